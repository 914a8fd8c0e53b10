# =============================================================================
# tests/unit/test_config.py
# Unit Tests for WorkerConfig and load_config
# =============================================================================

import pytest
from dataclasses import FrozenInstanceError

from pwa_core.errors import ConfigurationError
from pwa_core.offline.config import SyncPolicy, WorkerConfig, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate from PWA_* variables and any config/worker.toml in the cwd"""
    for name in ("PWA_CACHE_VERSION", "PWA_SCOPE_URL", "PWA_BACKEND_HOST", "PWA_SYNC_POLICY", "PWA_DATA_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


class TestWorkerConfigDefaults:
    """Defaults and derived values"""

    def test_defaults_match_deployed_worker(self):
        config = WorkerConfig()

        assert config.cache_version == "formulario-cache-v0051"
        assert config.backend_host == "vps.pesoexato.com"
        assert config.sync_tag == "background-sync-formularios"
        assert config.sync_policy is SyncPolicy.DRAIN_ALL
        assert config.db_name == "FormulariosDB"
        assert config.db_version == 4

    def test_core_assets_resolve_against_scope(self):
        config = WorkerConfig(scope_url="https://app.example.com/formulario/")

        assert config.core_asset_urls == (
            "https://app.example.com/formulario/",
            "https://app.example.com/formulario/index.html",
            "https://app.example.com/formulario/manifest.json",
            "https://app.example.com/formulario/sw.js",
        )
        assert config.offline_document_url == "https://app.example.com/formulario/index.html"
        assert config.origin_host == "app.example.com"

    def test_submit_url(self):
        assert WorkerConfig().submit_url == "https://vps.pesoexato.com/servico_set"

    def test_config_is_immutable(self):
        config = WorkerConfig()
        with pytest.raises(FrozenInstanceError):
            config.cache_version = "other"

    def test_with_overrides_returns_new_version(self):
        v1 = WorkerConfig()
        v2 = v1.with_overrides(cache_version="formulario-cache-v0052")

        assert v1.cache_version == "formulario-cache-v0051"
        assert v2.cache_version == "formulario-cache-v0052"


class TestWorkerConfigValidation:
    """Invalid values raise ConfigurationError"""

    def test_unknown_sync_policy(self):
        with pytest.raises(ConfigurationError) as exc:
            WorkerConfig(sync_policy="sometimes")
        assert exc.value.details["config_key"] == "sync_policy"
        assert not exc.value.recoverable

    def test_policy_from_string(self):
        assert WorkerConfig(sync_policy="oldest_only").sync_policy is SyncPolicy.OLDEST_ONLY

    def test_relative_scope_rejected(self):
        with pytest.raises(ConfigurationError):
            WorkerConfig(scope_url="./app/")

    def test_empty_cache_version_rejected(self):
        with pytest.raises(ConfigurationError):
            WorkerConfig(cache_version="")

    def test_cdn_hosts_must_be_a_list(self):
        with pytest.raises(ConfigurationError):
            WorkerConfig(cdn_hosts="cdnjs")


class TestLoadConfig:
    """File, environment and override precedence"""

    def test_defaults_without_file(self):
        assert load_config() == WorkerConfig()

    def test_reads_worker_table(self, tmp_path):
        path = tmp_path / "worker.toml"
        path.write_text(
            '[worker]\n'
            'cache_version = "formulario-cache-v0099"\n'
            'cdn_hosts = ["unpkg.com"]\n'
            'db_version = 5\n'
        )

        config = load_config(path)

        assert config.cache_version == "formulario-cache-v0099"
        assert config.cdn_hosts == ("unpkg.com",)
        assert config.db_version == 5

    def test_default_path_in_cwd(self, tmp_path):
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "worker.toml").write_text('[worker]\nbackend_host = "api.local"\n')

        assert load_config().backend_host == "api.local"

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "worker.toml"
        path.write_text('[worker]\ncache_version = "from-file"\n')
        monkeypatch.setenv("PWA_CACHE_VERSION", "from-env")

        assert load_config(path).cache_version == "from-env"

    def test_keyword_overrides_win(self, monkeypatch):
        monkeypatch.setenv("PWA_SYNC_POLICY", "oldest_only")

        config = load_config(sync_policy="drain_all")

        assert config.sync_policy is SyncPolicy.DRAIN_ALL

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(tmp_path / "nope.toml")

    def test_unknown_key_in_file(self, tmp_path):
        path = tmp_path / "worker.toml"
        path.write_text('[worker]\ncache_name = "typo"\n')

        with pytest.raises(ConfigurationError) as exc:
            load_config(path)
        assert "cache_name" in exc.value.message

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "worker.toml"
        path.write_text("[worker\n")

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_non_integer_version(self):
        with pytest.raises(ConfigurationError):
            load_config(db_version="four")
