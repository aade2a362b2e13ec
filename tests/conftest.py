import sys
import os

import pytest

# Add backend/ to path so tests can import backend modules directly
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

# Add scripts/ to path so tests can import script modules directly
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))

SPECIAL_PROCEDURAL = "Special requirement: procedural programming"
SPECIAL_PROGRAMMING = "Special requirement: programming experience"
PERMISSION_INSTRUCTOR = "Permission: permission of instructor"


@pytest.fixture
def cs_token_strings():
    """Token strings for a small CS catalog slice."""
    return {
        "CS 2110": (
            f"COURSE(CS 1110) OR COURSE(CS 1112) OR COURSE({SPECIAL_PROCEDURAL})"
        ),
        "CS 2112": (
            f"COURSE(CS 1110) OR COURSE(CS 1112) OR COURSE({SPECIAL_PROCEDURAL})"
        ),
        "CS 2800": "COURSE(MATH 1110) OR COURSE(CS 1110) OR COURSE(CS 1112)",
        "CS 3110": (
            f"COURSE(CS 2110) OR COURSE(CS 2112) OR COURSE({SPECIAL_PROGRAMMING})"
        ),
        "CS 4820": "COURSE(CS 2800) AND COURSE(CS 3110)",
        "CS 4830": "COURSE(CS 4820)",
        "CS 4320": "COURSE(CS 2110) AND COURSE(CS 2800)",
        "CS 5320": "COURSE(CS 2110) OR COURSE(CS 2800)",
        "CS 4999": f"COURSE(CS 3110) AND COURSE({PERMISSION_INSTRUCTOR})",
    }


@pytest.fixture
def cs_store(cs_token_strings):
    from data_loader import RequirementStore
    return RequirementStore(cs_token_strings)
