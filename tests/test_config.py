import pytest

from src.config import CONFIG_ENV_KEY, load_config


def write_config(tmp_path, text):
    path = tmp_path / "config.yml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_load_config_applies_defaults(tmp_path):
    path = write_config(tmp_path, "token: abc\nguild_id: '1376633819884687501'\n")

    config = load_config(path)

    assert config.token == "abc"
    assert config.guild_id == 1376633819884687501
    assert config.log_level == "INFO"
    assert config.database_path == "invites.db"
    assert config.command_prefix == "?"
    assert config.legacy_config_path is None
    assert config.legacy_invite_data_path is None


def test_load_config_reads_all_options(tmp_path):
    path = write_config(
        tmp_path,
        "\n".join(
            [
                "token: abc",
                "guild_id: 42",
                "log_level: debug",
                "database_path: data/invites.db",
                "command_prefix: '!'",
                "legacy_config_path: config.json",
                "legacy_invite_data_path: inviteData.json",
            ]
        ),
    )

    config = load_config(path)

    assert config.log_level == "DEBUG"
    assert config.database_path == "data/invites.db"
    assert config.command_prefix == "!"
    assert config.legacy_config_path == "config.json"
    assert config.legacy_invite_data_path == "inviteData.json"


def test_load_config_uses_env_path(tmp_path, monkeypatch):
    path = write_config(tmp_path, "token: abc\nguild_id: 7\n")
    monkeypatch.setenv(CONFIG_ENV_KEY, path)

    assert load_config().guild_id == 7


@pytest.mark.parametrize(
    "text, message",
    [
        ("guild_id: 1\n", "token"),
        ("token: abc\n", "guild_id"),
        ("token: abc\nguild_id: general\n", "guild_id"),
        ("token: abc\nguild_id: 1\nlog_level: loud\n", "log_level"),
    ],
)
def test_load_config_rejects_invalid_files(tmp_path, text, message):
    path = write_config(tmp_path, text)

    with pytest.raises(ValueError, match=message):
        load_config(path)
