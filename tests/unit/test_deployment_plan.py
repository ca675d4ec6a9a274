"""Unit tests for apply-spec parsing: update policies, stemcells, variables."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from fleetwarden.deployment_plan.stemcell import StemcellReference
from fleetwarden.deployment_plan.update_config import UpdateConfig, parse_watch_time
from fleetwarden.deployment_plan.variables import MappingVariablesInterpolator
from fleetwarden.errors import StemcellNotFound, VariableNotFound

# ---------------------------------------------------------------------------
# Watch times and update policy
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (5000, (5000, 5000)),
        ("5000", (5000, 5000)),
        ("1000-30000", (1000, 30000)),
        (" 1000 - 2000 ", (1000, 2000)),
        ([100, 200], (100, 200)),
        ("0-0", (0, 0)),
    ],
)
def test_parse_watch_time(value: object, expected: tuple[int, int]) -> None:
    assert parse_watch_time(value) == expected


@pytest.mark.parametrize("value", ["5000-1000", "1-2-3", "soon", True, None, 1.5])
def test_parse_watch_time_rejects(value: object) -> None:
    with pytest.raises(ValueError):
        parse_watch_time(value)


def test_update_config_from_apply_spec() -> None:
    config = UpdateConfig.from_apply_spec(
        {
            "update": {
                "canaries": 2,
                "max_in_flight": "25%",
                "canary_watch_time": "1000-60000",
                "update_watch_time": 5000,
                "unknown_key": True,
            }
        }
    )

    assert config is not None
    assert config.canaries == 2
    assert config.max_in_flight == "25%"
    assert (config.min_canary_watch_time, config.max_canary_watch_time) == (1000, 60000)
    assert (config.min_update_watch_time, config.max_update_watch_time) == (5000, 5000)


def test_update_config_absent() -> None:
    assert UpdateConfig.from_apply_spec({"job": {"name": "worker"}}) is None


def test_update_config_defaults() -> None:
    config = UpdateConfig.from_apply_spec({"update": {}})

    assert config is not None
    assert config.update_watch_time == (30000, 30000)


def test_update_config_invalid_watch_time() -> None:
    with pytest.raises(ValidationError):
        UpdateConfig.model_validate({"update_watch_time": "9-1"})


# ---------------------------------------------------------------------------
# Stemcell references
# ---------------------------------------------------------------------------


def test_stemcell_reference_normalises_version() -> None:
    ref = StemcellReference.parse({"name": "ubuntu-jammy", "version": 1.2, "os": "ubuntu"})

    assert ref.version == "1.2"
    assert ref.desc == "ubuntu-jammy/1.2"
    assert ref.spec() == {"name": "ubuntu-jammy", "version": "1.2"}
    assert ref.cid is None


@pytest.mark.parametrize("spec", [None, "ubuntu", {"name": "ubuntu"}, {"version": "1"}])
def test_stemcell_reference_invalid(spec: object) -> None:
    with pytest.raises(StemcellNotFound):
        StemcellReference.parse(spec)


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------


def test_whole_placeholder_keeps_value_type() -> None:
    interpolator = MappingVariablesInterpolator({"port": 8080, "tls": {"ca": "PEM"}})

    result = interpolator.interpolate({"port": "((port))", "tls": "((tls))"})

    assert result == {"port": 8080, "tls": {"ca": "PEM"}}


def test_embedded_placeholder_is_substituted_as_text() -> None:
    interpolator = MappingVariablesInterpolator({"host": "db.internal", "port": 5432})

    assert interpolator.interpolate("postgres://((host)):((port))/app") == (
        "postgres://db.internal:5432/app"
    )


def test_interpolation_recurses_and_ignores_bang() -> None:
    interpolator = MappingVariablesInterpolator({"password": "s3cret"})

    result = interpolator.interpolate(
        {"users": [{"name": "admin", "password": "((!password))"}], "count": 3}
    )

    assert result == {"users": [{"name": "admin", "password": "s3cret"}], "count": 3}


def test_interpolation_does_not_alias_values() -> None:
    shared = {"ca": "PEM"}
    interpolator = MappingVariablesInterpolator({"tls": shared})

    result = interpolator.interpolate("((tls))")
    result["ca"] = "changed"

    assert shared == {"ca": "PEM"}


def test_missing_variable() -> None:
    with pytest.raises(VariableNotFound, match="'password'"):
        MappingVariablesInterpolator().interpolate({"password": "((password))"})
