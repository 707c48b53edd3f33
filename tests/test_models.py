import pytest

from app_stager.core.models import (
    DeploymentRequest,
    DeploymentTarget,
    PointerDocument,
    StagingState,
    holding_path_for,
    output_path_for,
)


@pytest.mark.parametrize(
    "name,expected",
    [
        ("myapp-ab12cd34.zip", "myapp"),
        ("foo-bar-deadbeef.zip", "foo-bar"),
        ("releases/app-aaaa1111.zip", "app"),
        ("app-aaaa1111", "app"),
        ("nohash.zip", ""),
    ],
)
def test_output_path_for(name, expected):
    assert output_path_for(name) == expected


def test_target_from_key_uses_basename():
    target = DeploymentTarget.from_key("releases/2024/web-app-0f0f0f.zip")
    assert target.zip_file_name == "web-app-0f0f0f.zip"
    assert target.output_path == "web-app"
    assert target.holding_path == "web-app-holding"


def test_holding_path_for():
    assert holding_path_for("/srv/app") == "/srv/app-holding"


def test_pointer_document_is_immutable_and_ignores_extra_fields():
    pointer = PointerDocument(bucket="b", key="k.zip", revision="abc")
    assert pointer.bucket == "b"
    with pytest.raises(Exception):
        pointer.bucket = "other"


def test_deployment_request_gets_an_id():
    a = DeploymentRequest(bucket="b", key="k")
    b = DeploymentRequest(bucket="b", key="k")
    assert a.deployment_id and a.deployment_id != b.deployment_id


def test_staging_state_lifecycle():
    state = StagingState()
    assert not state.is_staged

    state.record("app", "app-holding")
    assert state.is_staged
    assert state.holding_path == "app-holding"

    state.clear()
    assert not state.is_staged
    assert state.original_path is None
