import inspect
import sys
from typing import List, Optional

import pytest


def execute_pytest_file(additional_pytest_args: Optional[List[str]] = None) -> None:
    """
    Runs pytest on the file that calls this function.
    Meant to be used under `if __name__ == "__main__":` of a test file.
    """
    caller_filepath = inspect.stack()[1].filename
    pytest_args = [caller_filepath, "-s"]
    if additional_pytest_args is not None:
        pytest_args.extend(additional_pytest_args)

    sys.exit(pytest.main(pytest_args))
