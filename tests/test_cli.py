from __future__ import annotations

import textwrap

import pytest

from riptide.cli import load_app, main


DEMO_APP = textwrap.dedent(
    """
    from __future__ import annotations

    from dataclasses import dataclass

    from riptide import App, RequestContext, Route, wire


    @dataclass
    class SayHelloRequest:
        name: str = wire("input_name", required=True, default="")


    @dataclass
    class SayHelloResponse:
        Message: str = ""


    def say_hello(ctx: RequestContext, req: SayHelloRequest) -> SayHelloResponse:
        return SayHelloResponse(Message=f"Hello {req.name}")


    app = App("localhost:8000")
    Route(say_hello).attach(app)


    def make_app() -> App:
        return app


    not_an_app = 42
    """
)


@pytest.fixture
def demo_module(tmp_path, monkeypatch: pytest.MonkeyPatch, request: pytest.FixtureRequest) -> str:
    module_name = f"riptide_demo_{request.node.name.replace('[', '_').replace(']', '_')}"
    (tmp_path / f"{module_name}.py").write_text(DEMO_APP, encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))
    monkeypatch.chdir(tmp_path)
    return module_name


def test_generate_writes_file(demo_module: str, tmp_path) -> None:
    output_path = tmp_path / "out" / "api.ts"
    assert main(["generate", f"{demo_module}:app", "--out", str(output_path)]) == 0
    assert "export async function SayHello(" in output_path.read_text(encoding="utf-8")


def test_generate_prints_without_location(demo_module: str, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["generate", f"{demo_module}:make_app"]) == 0
    assert "export enum Status {" in capsys.readouterr().out


def test_load_app_rejects_non_apps(demo_module: str) -> None:
    with pytest.raises(RuntimeError):
        load_app(f"{demo_module}:not_an_app")
    with pytest.raises(RuntimeError):
        load_app(f"{demo_module}:missing")
    with pytest.raises(RuntimeError):
        load_app(demo_module)


def test_errors_are_reported(demo_module: str, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["generate", f"{demo_module}:not_an_app"]) == 1
    assert capsys.readouterr().err.startswith("riptide: ")
