from __future__ import annotations

import argparse
import io

import pytest

from mlxpoems.common.schema import GenerationSettings
from mlxpoems.local_m1.run_poem import StreamPrinter, positive_int, run_poem


def test_run_poem_streams_full_text(make_controller) -> None:
    controller = make_controller(settings=GenerationSettings(max_tokens=10, display_every_n_tokens=4))
    out = io.StringIO()

    state = run_poem(controller, "高跟鞋", out)

    assert state.output == "0123456789"
    assert out.getvalue() == "0123456789\n"
    assert controller._subscribers == []


def test_stream_printer_restarts_on_revised_text(make_controller) -> None:
    controller = make_controller()
    out = io.StringIO()
    printer = StreamPrinter(out)

    controller.output = "abc"
    printer("output", controller.state())
    controller.output = "abd"
    printer("output", controller.state())

    assert out.getvalue() == "abc\nabd"


def test_positive_int_flags() -> None:
    assert positive_int("3") == 3
    for bad in ("0", "-2"):
        with pytest.raises(argparse.ArgumentTypeError):
            positive_int(bad)
    with pytest.raises(ValueError):
        positive_int("four")
