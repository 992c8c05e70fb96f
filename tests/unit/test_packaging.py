from pathlib import Path

import pytest

tomllib = pytest.importorskip("tomllib")

PYPROJECT = Path(__file__).resolve().parents[2] / "pyproject.toml"


def _requirement_names(requirements):
    names = set()
    for requirement in requirements:
        for separator in "<>=!~;[ ":
            requirement = requirement.split(separator)[0]
        names.add(requirement.lower())
    return names


def test_directly_imported_libraries_are_declared():
    project = tomllib.loads(PYPROJECT.read_text())["project"]

    assert {"aws-cdk-lib", "constructs", "boto3", "botocore"} <= _requirement_names(project["dependencies"])
    assert {"pytest", "moto"} <= _requirement_names(project["optional-dependencies"]["test"])
