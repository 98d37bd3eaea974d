"""
Unit tests for the relaycover CLI module.

Tests:
- parse_args argument parsing
- load_config YAML loading, overrides and error mapping
- run() end-to-end against a scripted relay pool
- main() exit codes
"""

import argparse
import contextlib
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from fixtures.events import (
    FakeRelayPool,
    contact_list_event,
    profile_event,
    pubkey_for,
    relay_list_event,
)

from relaycover.__main__ import DEFAULT_CONFIG, load_config, main, parse_args, run
from relaycover.core.exceptions import ConfigurationError
from relaycover.services.coverage import CoverageConfig


USER = pubkey_for(100)
FOLLOWEE = pubkey_for(1)
BOOT = "wss://boot.example"
READ = "wss://read.example"
ELSEWHERE = "wss://elsewhere.example"


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def seeded_pool(fake_pool: FakeRelayPool) -> FakeRelayPool:
    fake_pool.add(
        BOOT,
        relay_list_event(USER, [READ]),
        profile_event(USER, name="alice"),
        contact_list_event(USER, [FOLLOWEE]),
        relay_list_event(FOLLOWEE, [READ, ELSEWHERE]),
        profile_event(FOLLOWEE, name="bob"),
    )
    return fake_pool


@pytest.fixture
def patched_pool(seeded_pool: FakeRelayPool):
    """Route the CLI's relay pool to the scripted pool."""

    @contextlib.asynccontextmanager
    async def open_pool(**_kwargs):
        yield seeded_pool

    with patch("relaycover.__main__.NostrSdkRelayPool", side_effect=open_pool) as mock_pool:
        yield mock_pool


@pytest.fixture
def config() -> CoverageConfig:
    return CoverageConfig(bootstrap_relays=[BOOT], timeouts={"fetch": 0.2})


# ============================================================================
# parse_args Tests
# ============================================================================


class TestParseArgs:
    def test_defaults(self) -> None:
        args = parse_args([USER])

        assert args.identity == USER
        assert args.config is None
        assert args.directory is None
        assert args.legacy is None
        assert args.log_level == "INFO"
        assert args.json_logs is False
        assert args.dump is False

    def test_flags(self) -> None:
        args = parse_args(
            [
                USER,
                "--config",
                "custom.yaml",
                "--no-directory",
                "--legacy",
                "--log-level",
                "DEBUG",
                "--json-logs",
                "--dump",
            ]
        )

        assert args.config == Path("custom.yaml")
        assert args.directory is False
        assert args.legacy is True
        assert args.log_level == "DEBUG"
        assert args.json_logs is True
        assert args.dump is True

    def test_identity_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_args([])

    def test_invalid_log_level(self) -> None:
        with pytest.raises(SystemExit):
            parse_args([USER, "--log-level", "TRACE"])


# ============================================================================
# load_config Tests
# ============================================================================


class TestLoadConfig:
    def test_default_path(self) -> None:
        assert Path("config/relaycover.yaml") == DEFAULT_CONFIG

    def test_explicit_file(self, tmp_path: Path) -> None:
        path = tmp_path / "relaycover.yaml"
        path.write_text("batch:\n  size: 10\nsources:\n  use_legacy_format: true\n")

        config = load_config(path)

        assert config.batch.size == 10
        assert config.sources.use_legacy_format is True

    def test_overrides_win(self, tmp_path: Path) -> None:
        """CLI source flags override the file's sources section."""
        path = tmp_path / "relaycover.yaml"
        path.write_text("sources:\n  use_legacy_format: true\n")

        config = load_config(path, {"use_legacy_format": False, "use_directory_format": False})

        assert config.sources.use_legacy_format is False
        assert config.sources.use_directory_format is False

    def test_defaults_without_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without a default config file the built-in defaults apply."""
        monkeypatch.chdir(tmp_path)

        config = load_config(None)

        assert config == CoverageConfig()

    def test_default_file_used(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        (tmp_path / "config").mkdir()
        (tmp_path / DEFAULT_CONFIG).write_text("batch:\n  size: 5\n")

        assert load_config(None).batch.size == 5

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("batch: [unclosed\n")

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_invalid_values(self, tmp_path: Path) -> None:
        path = tmp_path / "invalid.yaml"
        path.write_text("batch:\n  size: 0\n")

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path)


# ============================================================================
# run Tests
# ============================================================================


class TestRun:
    @pytest.mark.asyncio
    async def test_dump(
        self,
        patched_pool,
        config: CoverageConfig,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """A complete run prints the user line and one line per followee."""
        code = await run(parse_args([USER, "--dump"]), config)

        assert code == 0
        assert capsys.readouterr().out.splitlines() == [
            ", user, -, -, alice, -, , read.example",
            "1, 1, -, bob, -, 1, read.example:R, elsewhere.example:N",
        ]
        patched_pool.assert_called_once_with(timeout=0.2)

    @pytest.mark.asyncio
    async def test_no_dump(
        self,
        patched_pool,
        config: CoverageConfig,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        assert await run(parse_args([USER]), config) == 0
        assert capsys.readouterr().out == ""

    @pytest.mark.asyncio
    async def test_invalid_identity(self, patched_pool, config: CoverageConfig) -> None:
        assert await run(parse_args(["not-a-key"]), config) == 1

    @pytest.mark.asyncio
    async def test_no_followees(self, patched_pool, config: CoverageConfig) -> None:
        assert await run(parse_args([pubkey_for(999)]), config) == 1


# ============================================================================
# main Tests
# ============================================================================


class TestMain:
    @pytest.mark.asyncio
    async def test_invalid_config_exits_2(self, tmp_path: Path) -> None:
        with patch("relaycover.__main__.setup_logging"):
            code = await main([USER, "--config", str(tmp_path / "absent.yaml")])

        assert code == 2

    @pytest.mark.asyncio
    async def test_overrides_passed_to_run(self, tmp_path: Path) -> None:
        path = tmp_path / "relaycover.yaml"
        path.write_text("bootstrap_relays:\n  - wss://boot.example\n")

        with (
            patch("relaycover.__main__.setup_logging") as mock_setup,
            patch("relaycover.__main__.run", new_callable=AsyncMock, return_value=0) as mock_run,
        ):
            code = await main([USER, "--config", str(path), "--legacy", "--no-directory"])

        assert code == 0
        mock_setup.assert_called_once_with("INFO")
        args, config, _log = mock_run.await_args.args
        assert isinstance(args, argparse.Namespace)
        assert config.bootstrap_relays == [BOOT]
        assert config.sources.use_legacy_format is True
        assert config.sources.use_directory_format is False

    @pytest.mark.asyncio
    async def test_keyboard_interrupt(self, tmp_path: Path) -> None:
        path = tmp_path / "relaycover.yaml"
        path.write_text("{}\n")

        with (
            patch("relaycover.__main__.setup_logging"),
            patch("relaycover.__main__.run", new_callable=AsyncMock, side_effect=KeyboardInterrupt),
        ):
            code = await main([USER, "--config", str(path)])

        assert code == 130
