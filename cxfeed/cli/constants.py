"""Process exit codes of the cxfeed CLI."""

SYSTEM_EXIT_CODE = 1
DATASET_EXIT_CODE = 2
UPSTREAM_EXIT_CODE = 3
CONFIGURATION_EXIT_CODE = 4
