import os
import sys

import pytest

# Ensure the package and the commit fixtures are importable
TESTS_DIR = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, os.path.dirname(TESTS_DIR))
sys.path.insert(0, TESTS_DIR)

from genesistrust.logging_config import run_id_var


# Each test starts without a run id, as a fresh process would
@pytest.fixture(autouse=True)
def _reset_run_id():
    token = run_id_var.set('')
    yield
    run_id_var.reset(token)
