"""Tests for reading importer Lambda handler and CLI."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import boto3
from moto import mock_aws

from meterdata.store import InMemoryReadingStore, StoreUnavailableError

BUCKET = "meter-readings"
PULSE_CSV = (
    "1234567,1/15/2011,987654,1,12,12345,1.5,05/02/2011 01:00:00 AM,-85\n"
    "1234567,1/15/2011,987654,1,12,12345,2.5,05/03/2011 01:00:00 AM,-85\n"
)


class TestDownloadFilesToTmp:
    """Tests for download_files_to_tmp."""

    @mock_aws
    def test_downloads_and_decodes_keys(self, tmp_path: Path) -> None:
        """Keys are URL-decoded; missing objects are skipped."""
        from functions.reading_importer import app

        s3 = boto3.client("s3", region_name="ap-southeast-2")
        s3.create_bucket(Bucket=BUCKET, CreateBucketConfiguration={"LocationConstraint": "ap-southeast-2"})
        s3.put_object(Bucket=BUCKET, Key="incoming/site 1.csv", Body=PULSE_CSV.encode())

        with patch.object(app, "s3_resource", None):
            paths = app.download_files_to_tmp(
                [
                    {"bucket": BUCKET, "file_name": "incoming/site+1.csv"},
                    {"bucket": BUCKET, "file_name": "incoming/missing.csv"},
                ],
                str(tmp_path),
            )

        assert paths == [str(tmp_path / "site 1.csv")]
        assert (tmp_path / "site 1.csv").read_text() == PULSE_CSV


class TestLambdaHandler:
    """Tests for lambda_handler."""

    def test_missing_files(self, mock_lambda_context: MagicMock) -> None:
        """lambda_handler returns 400 without files."""
        from functions.reading_importer.app import lambda_handler

        result = lambda_handler({}, mock_lambda_context)

        assert result["statusCode"] == 400

    def test_invalid_family(self, mock_lambda_context: MagicMock) -> None:
        """lambda_handler returns 400 for an unknown device family."""
        from functions.reading_importer.app import lambda_handler

        result = lambda_handler({"files": [{"bucket": BUCKET, "file_name": "a.csv"}], "family": "gas"}, mock_lambda_context)

        assert result["statusCode"] == 400
        assert "Invalid family" in result["body"]

    @mock_aws
    def test_imports_files_from_s3(self, mock_lambda_context: MagicMock) -> None:
        """Files are downloaded, imported and summarised per file."""
        from functions.reading_importer import app

        s3 = boto3.client("s3", region_name="ap-southeast-2")
        s3.create_bucket(Bucket=BUCKET, CreateBucketConfiguration={"LocationConstraint": "ap-southeast-2"})
        s3.put_object(Bucket=BUCKET, Key="pulse.csv", Body=PULSE_CSV.encode())
        store = InMemoryReadingStore()

        with patch.object(app, "s3_resource", None), patch.object(app, "get_store", return_value=store):
            result = app.lambda_handler({"files": [{"bucket": BUCKET, "file_name": "pulse.csv"}]}, mock_lambda_context)

        assert result["statusCode"] == 200
        assert result["body"]["files"] == [
            {"file_name": "pulse.csv", "entries_processed": 2, "invalid_entries": 0, "non_monotonic": 0}
        ]
        assert [s.name for s in store.get_sources()] == ["987654-1"]

    def test_store_unreachable(self, mock_lambda_context: MagicMock, tmp_path: Path) -> None:
        """lambda_handler returns 503 when the store cannot be reached."""
        from functions.reading_importer import app

        local_file = tmp_path / "pulse.csv"
        local_file.write_text(PULSE_CSV)
        store = MagicMock()
        store.ping.side_effect = StoreUnavailableError("down")

        with (
            patch.object(app, "download_files_to_tmp", return_value=[str(local_file)]),
            patch.object(app, "get_store", return_value=store),
        ):
            result = app.lambda_handler({"files": [{"bucket": BUCKET, "file_name": "pulse.csv"}]}, mock_lambda_context)

        assert result["statusCode"] == 503

    def test_deadline_from_context(self, mock_lambda_context: MagicMock, tmp_path: Path) -> None:
        """The store deadline is derived from the Lambda's remaining time."""
        from functions.reading_importer import app

        local_file = tmp_path / "pulse.csv"
        local_file.write_text(PULSE_CSV)

        with (
            patch.object(app, "download_files_to_tmp", return_value=[str(local_file)]),
            patch.object(app, "get_store", return_value=InMemoryReadingStore()),
            patch.object(app, "run_import") as mock_run,
            patch.object(app, "deadline_after", return_value=123.0) as mock_deadline,
        ):
            mock_run.return_value = {"body": {"stats": MagicMock(entries_processed=0, invalid_entries=0, non_monotonic=0)}}
            app.lambda_handler({"files": [{"bucket": BUCKET, "file_name": "pulse.csv"}]}, mock_lambda_context)

        mock_deadline.assert_called_once_with(300000 / 1000 - app.DEADLINE_MARGIN_SECONDS)
        assert mock_run.call_args.kwargs["deadline"] == 123.0


class TestParseArgs:
    """Tests for CLI argument parsing."""

    def test_parse_args(self) -> None:
        """parse_args reads the file and import options."""
        from functions.reading_importer.app import parse_args

        args = parse_args(["--file", "readings.csv", "--family", "pulse", "--check-range", "--lookback-days", "3"])

        assert args.file == "readings.csv"
        assert args.family == "pulse"
        assert args.check_range
        assert not args.skip_first_row
        assert args.lookback_days == 3
        assert args.source_name is None
