# Property keys, sentinels and report names for meterqc

INSTALL_DATE = "installDate"
METER_TYPE = "meterType"
ACCOUNT_NUMBER = "accountNumber"
SAMPLING_INTERVAL = "samplingInterval"
GRADE = "grade"
IS_MONOTONICALLY_INCREASING = "isMonotonicallyIncreasing"

NO_READING_SENTINEL = "No Reading"
NULL_SENTINEL = "null"
NOT_AVAILABLE_VALUE = "N/A"

GRADE_A_DAILY_REPORT = "gradeA_daily"
GRADE_A_HOURLY_REPORT = "gradeA_hourly"
GRADE_B_REPORT = "gradeB"
GRADE_C_REPORT = "gradeC"
FAILED_REPORT = "failed"
DUPLICATE_MTU_REPORT = "duplicate_mtu_ids"
NON_MONOTONIC_REPORT = "non_monotonic_readings"

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"
