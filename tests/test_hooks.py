"""Tests for post-rewrite hook installation."""

import os

import pytest

from ephemera.errors import EphemeraError
from ephemera.hooks import HOOK_MARKER, HOOK_NAME, install_hooks, render_hook


class TestRenderHook:
    def test_invokes_record_rewrite(self):
        script = render_hook("ephemera")
        assert script.startswith("#!/bin/sh\n")
        assert "git ephemera record-rewrite" in script
        assert HOOK_MARKER in script

    def test_namespace_passed(self):
        assert "EPHEMERA_NAMESPACE=team/notes " in render_hook("team/notes")


class TestInstallHooks:
    def test_writes_executable_hook(self, tmp_path):
        path = install_hooks(tmp_path / "hooks", "ephemera")
        assert path == tmp_path / "hooks" / HOOK_NAME
        assert path.read_text() == render_hook("ephemera")
        assert os.access(path, os.X_OK)

    def test_existing_hook_not_replaced(self, tmp_path):
        hooks = tmp_path / "hooks"
        hooks.mkdir()
        (hooks / HOOK_NAME).write_text("#!/bin/sh\necho mine\n")
        with pytest.raises(EphemeraError, match="another tool"):
            install_hooks(hooks, "ephemera")
        assert "echo mine" in (hooks / HOOK_NAME).read_text()

    def test_reinstall_needs_force(self, tmp_path):
        hooks = tmp_path / "hooks"
        install_hooks(hooks, "ephemera")
        with pytest.raises(EphemeraError, match="git-ephemera"):
            install_hooks(hooks, "other")

    def test_force_replaces(self, tmp_path):
        hooks = tmp_path / "hooks"
        hooks.mkdir()
        (hooks / HOOK_NAME).write_text("#!/bin/sh\necho mine\n")
        install_hooks(hooks, "other", force=True)
        assert "EPHEMERA_NAMESPACE=other " in (hooks / HOOK_NAME).read_text()
