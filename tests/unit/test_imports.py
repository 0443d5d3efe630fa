"""Smoke tests ensuring packages import correctly."""

from __future__ import annotations


def test_import_radio_builder_package() -> None:
    import importlib

    assert importlib.import_module("radio_builder") is not None
    assert importlib.import_module("radio_builder.pipelines.orchestrator") is not None
    assert importlib.import_module("radio_builder.cli") is not None
