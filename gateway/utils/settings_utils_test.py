from gateway.settings import Settings


def test_reads_value_from_secret_file(tmp_path, monkeypatch):
    secret = tmp_path / "blocked_agents"
    secret.write_text("badbot|evil-crawler\n")
    monkeypatch.delenv("UA", raising=False)
    monkeypatch.setenv("UA_FILE", str(secret))

    assert Settings().UA == "badbot|evil-crawler"


def test_secret_file_takes_priority_over_env(tmp_path, monkeypatch):
    secret = tmp_path / "public_url"
    secret.write_text("https://mirror.example.org")
    monkeypatch.setenv("PUBLIC_URL", "https://env.example.org")
    monkeypatch.setenv("PUBLIC_URL_FILE", str(secret))

    assert Settings().PUBLIC_URL == "https://mirror.example.org"


def test_reads_json_from_secret_file(tmp_path, monkeypatch):
    secret = tmp_path / "aliases"
    secret.write_text('{"mirror": "registry.example.org"}')
    monkeypatch.setenv("REGISTRY_ALIASES_FILE", str(secret))

    assert Settings().REGISTRY_ALIASES == {"mirror": "registry.example.org"}


def test_missing_secret_file_is_ignored(tmp_path, monkeypatch):
    monkeypatch.delenv("URL302", raising=False)
    monkeypatch.setenv("URL302_FILE", str(tmp_path / "missing"))

    assert Settings().URL302 == ""
