"""
tests/ — Basic test coverage for obs-panel building blocks.
Run with: pytest tests/ -v
"""

import pytest


# ─── Event emitter ────────────────────────────────────────────────────────────

from obs_panel.core import EventEmitter


def test_emitter_calls_listeners_in_subscription_order():
    emitter = EventEmitter()
    seen = []
    emitter.subscribe("scene", lambda p: seen.append(("first", p)))
    emitter.subscribe("scene", lambda p: seen.append(("second", p)))
    emitter.subscribe("other", lambda p: seen.append(("other", p)))

    assert emitter.emit("scene", "Live") == 2
    assert seen == [("first", "Live"), ("second", "Live")]


def test_emitter_unsubscribe_by_token():
    emitter = EventEmitter()
    seen = []
    callback = seen.append
    a = emitter.subscribe("scene", callback)
    emitter.subscribe("scene", callback)

    assert emitter.unsubscribe(a) is True
    assert emitter.unsubscribe(a) is False
    emitter.emit("scene", "x")
    assert seen == ["x"]
    assert emitter.listener_count("scene") == 1


def test_emitter_isolates_listener_errors():
    emitter = EventEmitter()
    seen = []

    def broken(_):
        raise RuntimeError("listener blew up")

    emitter.subscribe("scene", broken)
    emitter.subscribe("scene", seen.append)
    emitter.emit("scene", "Live")
    assert seen == ["Live"]


# ─── Error classification ─────────────────────────────────────────────────────

from obswebsocket import exceptions as obs_exceptions

from obs_panel.core import AuthRejected, ConnectionRefused, NegotiationMismatch
from obs_panel.core.session import classify_open_error


def _wrapped_refusal():
    try:
        try:
            raise ConnectionRefusedError(111, "Connection refused")
        except OSError as e:
            raise RuntimeError(str(e))
    except RuntimeError as exc:
        return exc


def test_refused_socket_keeps_errno():
    err = classify_open_error(_wrapped_refusal())
    assert isinstance(err, ConnectionRefused)
    assert err.code == 111


def test_auth_failure_gets_obs_close_code():
    err = classify_open_error(RuntimeError("Authentication failed."))
    assert isinstance(err, AuthRejected)
    assert err.code == 4009


def test_rpc_mismatch():
    err = classify_open_error(RuntimeError("Unsupported RPC version"))
    assert isinstance(err, NegotiationMismatch)
    assert err.code == 4010


def test_library_identify_failure_is_auth():
    exc = obs_exceptions.ConnectionFailure("Empty response to Identify, password may be inconnect.")
    err = classify_open_error(exc, secret="wrong")
    assert isinstance(err, AuthRejected)
    assert err.code == 4009


def test_library_connection_failure_keeps_socket_errno():
    try:
        try:
            raise ConnectionRefusedError(111, "Connection refused")
        except OSError as e:
            raise obs_exceptions.ConnectionFailure(str(e))
    except obs_exceptions.ConnectionFailure as exc:
        err = classify_open_error(exc)
    assert isinstance(err, ConnectionRefused)
    assert err.code == 111


def test_dropped_handshake_with_password_is_auth():
    exc = RuntimeError("Connection to remote host was lost.")
    assert isinstance(classify_open_error(exc, secret="pw"), AuthRejected)
    assert isinstance(classify_open_error(exc, secret=None), ConnectionRefused)


# ─── Scene models ─────────────────────────────────────────────────────────────

from obs_panel.scenes import Scene, SceneSet


def test_scene_from_obs_keeps_metadata_opaque():
    scene = Scene.from_obs({"sceneName": "Live", "sceneIndex": 3, "sceneUuid": "abc"})
    assert scene.name == "Live"
    assert scene.metadata == {"sceneIndex": 3, "sceneUuid": "abc"}
    assert scene.to_dict() == {"name": "Live", "sceneIndex": 3, "sceneUuid": "abc"}


def test_scene_set_presents_front_to_back():
    raw = [{"sceneName": n} for n in ("Bottom", "Middle", "Top")]
    scene_set = SceneSet.from_obs(raw, "Middle")
    assert scene_set.names == ["Top", "Middle", "Bottom"]
    assert scene_set.is_consistent()
    assert not scene_set.with_active("Gone").is_consistent()


# ─── Config ───────────────────────────────────────────────────────────────────

from pydantic import ValidationError

from obs_panel.config import ConnectionParameters, ParameterStore, Settings
from obs_panel.core import InvalidParameterKey


def test_settings_defaults():
    s = Settings()
    assert s.obs.port == 4455
    assert s.obs.retry_delay == 1.0
    assert s.api.port == 8080


def test_settings_yaml_load(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text(
        "obs:\n  host: 192.168.1.100\n  port: 4455\n  password: secret\n  retry_delay: 2.5\n"
        "api:\n  port: 9090\n"
    )
    s = Settings.load(config)
    assert s.obs.host == "192.168.1.100"
    assert s.obs.retry_delay == 2.5
    assert s.api.port == 9090
    assert s.obs.connection_parameters() == ConnectionParameters(host="192.168.1.100", port=4455, secret="secret")


def test_connection_parameters_are_immutable_and_validated():
    params = ConnectionParameters(host="obs.local", port=4455)
    assert params.url == "ws://obs.local:4455"
    with pytest.raises(ValidationError):
        params.host = "elsewhere"
    with pytest.raises(ValidationError):
        ConnectionParameters(port=65536)


def test_check_key_rejects_unknown_fields():
    ConnectionParameters.check_key("secret")
    with pytest.raises(InvalidParameterKey, match="bogusKey"):
        ConnectionParameters.check_key("bogusKey")


def test_parameter_store_roundtrip(tmp_path):
    store = ParameterStore(tmp_path / "connection.yaml")
    assert store.load() is None

    params = ConnectionParameters(host="10.0.0.2", port=4460, secret="pw")
    store.save(params)
    assert store.load() == params


def test_parameter_store_ignores_garbage(tmp_path):
    path = tmp_path / "connection.yaml"
    path.write_text("host: x\nport: not-a-port\n")
    assert ParameterStore(path).load() is None
