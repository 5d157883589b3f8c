import pytest


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    import os

    for name in list(os.environ):
        if name.startswith("ROOMLINK_"):
            monkeypatch.delenv(name)


def test_defaults_match_live_endpoints():
    from shared.config import load_config

    config = load_config()

    assert config.find_info_url == "https://www.gimkit.com/api/matchmaker/find-info-from-code"
    assert config.join_page_url == "https://www.gimkit.com/join"
    assert config.join_url == "https://www.gimkit.com/api/matchmaker/join"
    assert config.heartbeat_interval == 25.0
    assert config.credential_key == "BSKA"
    assert config.cover_text == "Gimkit Web Client V3.1"
    assert config.hider is None


def test_yaml_file_then_env_override(tmp_path, monkeypatch):
    from shared.config import load_config

    path = tmp_path / "roomlink.yaml"
    path.write_text(
        "base_url: http://localhost:8080/\n"
        "heartbeat_interval: 5\n"
        "hider: mypkg.steg:hide\n"
    )
    monkeypatch.setenv("ROOMLINK_HEARTBEAT_INTERVAL", "2.5")

    config = load_config(path)

    assert config.join_url == "http://localhost:8080/api/matchmaker/join"
    assert config.heartbeat_interval == 2.5
    assert config.hider == "mypkg.steg:hide"


@pytest.mark.parametrize("content", [
    "unknown_key: 1\n",
    "heartbeat_interval: soon\n",
    "join_timeout: -1\n",
    "base_url: 42\n",
    "- just\n- a list\n",
    "base_url: [unclosed\n",
])
def test_invalid_yaml_is_configuration_error(tmp_path, content):
    from shared.config import load_config
    from shared.errors import ConfigurationError

    path = tmp_path / "roomlink.yaml"
    path.write_text(content)

    with pytest.raises(ConfigurationError):
        load_config(path)


def test_missing_file_is_configuration_error(tmp_path):
    from shared.config import load_config
    from shared.errors import ConfigurationError

    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "absent.yaml")


def test_create_session_requires_hider():
    from roomlink.session import create_session
    from shared.config import RoomlinkConfig
    from shared.errors import ConfigurationError

    with pytest.raises(ConfigurationError):
        create_session("123456", config=RoomlinkConfig())


@pytest.mark.asyncio
async def test_create_session_loads_hider_from_config():
    import os.path

    from roomlink.session import create_session
    from shared.config import RoomlinkConfig

    session = create_session("123456", config=RoomlinkConfig(hider="os.path:join"))

    assert session.negotiator.hider is os.path.join
    await session.close()
