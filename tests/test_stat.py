import pytest

from veilproxy.stat import (
    AuthConfig,
    AuthError,
    Authenticator,
    MySQLConfig,
    RedisConfig,
    TrafficMeter,
    new_auth,
    register_auth_creator,
)


class _RecordingAuth(Authenticator):
    def __init__(self, config):
        self.config = config
        self.closed = False

    def auth_user(self, hash_value):
        return None

    def add_user(self, hash_value):
        pass

    def del_user(self, hash_value):
        pass

    def list_users(self):
        return []

    def close(self):
        self.closed = True


def test_registered_creator_receives_config():
    register_auth_creator("recording", _RecordingAuth)
    config = AuthConfig(hashes={"hash": "password"})
    auth = new_auth("recording", config)
    assert isinstance(auth, _RecordingAuth)
    assert auth.config is config


def test_unknown_driver_raises():
    with pytest.raises(AuthError, match="driver name nosuchdriver not found"):
        new_auth("nosuchdriver", AuthConfig())


def test_later_registration_replaces_earlier():
    register_auth_creator("replaceable", _RecordingAuth)
    marker = _RecordingAuth(AuthConfig())
    register_auth_creator("replaceable", lambda config: marker)
    assert new_auth("replaceable", AuthConfig()) is marker


def test_authenticator_context_manager_closes():
    auth = _RecordingAuth(AuthConfig())
    with auth as entered:
        assert entered is auth
    assert auth.closed is True


def test_abstract_classes_cannot_be_instantiated():
    with pytest.raises(TypeError):
        TrafficMeter()
    with pytest.raises(TypeError):
        Authenticator()


def test_config_defaults_are_independent():
    first, second = AuthConfig(), AuthConfig()
    first.hashes["hash"] = "password"
    assert second.hashes == {}
    assert first.mysql is not second.mysql
    assert MySQLConfig().enabled is False
    assert RedisConfig().enabled is False