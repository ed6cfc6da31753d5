# Copyright (C) 2025 Björn Gunnar Bryggman. Licensed under the MIT License.

"""
Provides tests for the command-line entrypoint.

This module includes:
- `TestCli`: Tests for building run options from command-line arguments.
"""

from pathlib import Path
from unittest.mock import AsyncMock, patch

from click.testing import CliRunner

from microframework.app.domain.models import RunOptions
from microframework.app.presentation import main


class TestCli:
    """
    Tests for building run options from command-line arguments.

    Methods:
        - test_defaults: Tests that only the base directory is set without options.
        - test_directory_overrides: Tests that every directory and file override reaches the run options.
        - test_missing_base_directory: Tests that a missing base directory is rejected.
    """

    # ====================================== #
    #               Unit Tests               #
    # ====================================== #

    def test_defaults(self, tmp_path) -> None:
        with patch.object(main, "serve", new_callable=AsyncMock) as serve:
            result = CliRunner().invoke(main.cli, [str(tmp_path)])

        assert result.exit_code == 0, result.output
        serve.assert_awaited_once_with(RunOptions(base_directory=tmp_path))

    def test_directory_overrides(self, tmp_path) -> None:
        with patch.object(main, "serve", new_callable=AsyncMock) as serve:
            result = CliRunner().invoke(
                main.cli,
                [
                    str(tmp_path),
                    "--env", "prod",
                    "--config", "base.json",
                    "--config", "local.json",
                    "--parameters", "parameters.json",
                    "--controllers", "api",
                    "--documents", "models",
                    "--subscribers", "listeners",
                    "--subscribers", "audit",
                ],
            )

        assert result.exit_code == 0, result.output
        serve.assert_awaited_once_with(
            RunOptions(
                base_directory=tmp_path,
                configuration_files=[Path("base.json"), Path("local.json")],
                parameters_files=[Path("parameters.json")],
                controllers_directories=[Path("api")],
                odm_documents_directories=[Path("models")],
                odm_subscribers_directories=[Path("listeners"), Path("audit")],
                environment="prod",
            )
        )

    def test_missing_base_directory(self, tmp_path) -> None:
        with patch.object(main, "serve", new_callable=AsyncMock) as serve:
            result = CliRunner().invoke(main.cli, [str(tmp_path / "absent")])

        assert result.exit_code != 0
        serve.assert_not_called()
