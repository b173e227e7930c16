"""Command-line interface router for ``play``."""

from __future__ import annotations

import argparse
import json
import os
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, NamedTuple

from playground.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
    repo_descriptors,
)
from playground.constants import SESSION_STATE_FILE
from playground.observability import EventBus, correlation_scope, setup_logging
from playground.sandbox import (
    ContentLinker,
    ProcessLauncher,
    Promoter,
    Provisioner,
    SandboxLifecycle,
    SandboxStore,
    Session,
    SessionStateFile,
    supports_windowed_child,
)
from playground.sandbox.linker import describe_links
from playground.sandbox.provisioner import clone_options_from
from playground.ui.prompt import make_ask_name, make_confirm
from playground.ui.render import CLIRenderer, create_renderer
from playground.utils.fs import which_excluding

_RESTART_TIMEOUT_SECONDS: Final[float] = 30.0


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class Runtime:
    """Collaborators wired from one effective config."""

    config: Mapping[str, Any]
    store: SandboxStore
    session: Session
    state_file: SessionStateFile
    launcher: ProcessLauncher
    promoter: Promoter
    lifecycle: SandboxLifecycle


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="play",
        description=(
            "play: disposable editor home directories backed by configuration repos.\n\n"
            "Common workflows:\n"
            "  play checkout prelude       Clone (if needed) and launch a preset\n"
            "  play checkout user/repo     Launch a GitHub configuration\n"
            "  play restart                Restart the last launched sandbox\n"
            "  play persist                Make the last sandbox the default\n"
            "  play return                 Restore the original home\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: $XDG_CONFIG_HOME/play/config.toml if present).",
    )
    common.add_argument(
        "--yes",
        "-y",
        action="store_true",
        default=False,
        help="Answer yes to confirmation prompts (persist, return, kill on restart).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output and log at DEBUG level.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    checkout_parser = subparsers.add_parser(
        "checkout",
        parents=[common],
        help="Launch an installed sandbox, a preset, or a repository",
        description=(
            "Resolve TARGET as an installed sandbox, then a preset name, then a repository\n"
            "reference (owner/repo, git URL, or local repository path). Missing sandboxes\n"
            "are cloned first.\n\n"
            "Examples:\n"
            "  play checkout spacemacs\n"
            "  play checkout git@github.com:purcell/emacs.d.git\n"
            "  play checkout ~/src/my-emacs-config --name mine\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    checkout_parser.add_argument("target", help="Sandbox name, preset name, or repository.")
    checkout_parser.add_argument(
        "--name",
        default=None,
        help="Sandbox name for a repository (default: derived GitHub owner).",
    )
    checkout_parser.set_defaults(handler=_cmd_checkout)

    symlinks_parser = subparsers.add_parser(
        "update-symlinks",
        parents=[common],
        help="Link inherited home items into every installed sandbox",
    )
    symlinks_parser.set_defaults(handler=_cmd_update_symlinks)

    restart_parser = subparsers.add_parser(
        "restart",
        parents=[common],
        help="Start the last launched sandbox again",
    )
    restart_parser.set_defaults(handler=_cmd_restart)

    persist_parser = subparsers.add_parser(
        "persist",
        parents=[common],
        help="Write wrapper scripts making the last sandbox the default",
    )
    persist_parser.set_defaults(handler=_cmd_persist)

    return_parser = subparsers.add_parser(
        "return",
        parents=[common],
        help="Remove the wrapper scripts written by persist",
    )
    return_parser.set_defaults(handler=_cmd_return)

    list_parser = subparsers.add_parser(
        "list",
        parents=[common],
        help="List installed sandboxes and presets",
    )
    list_parser.add_argument("--json", action="store_true", default=False)
    list_parser.set_defaults(handler=_cmd_list)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show the effective configuration",
    )
    config_parser.add_argument("--json", action="store_true", default=False)
    config_parser.set_defaults(handler=_cmd_config)

    doctor_parser = subparsers.add_parser(
        "doctor",
        parents=[common],
        help="Check git, the application executable, and display support",
    )
    doctor_parser.add_argument("--json", action="store_true", default=False)
    doctor_parser.set_defaults(handler=_cmd_doctor)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        with correlation_scope(command=namespace.command):
            result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_checkout(args: argparse.Namespace) -> int:
    runtime = _build_runtime(args)
    selection = runtime.lifecycle.resolve(args.target)
    handle = runtime.lifecycle.checkout(
        selection,
        name=args.name,
        ask_name=make_ask_name(),
    )

    renderer = _renderer_for(args)
    _render_launch(renderer, handle)
    return 0


def _cmd_update_symlinks(args: argparse.Namespace) -> int:
    runtime = _build_runtime(args)
    results = runtime.lifecycle.update_symlinks()

    renderer = _renderer_for(args)
    if not results:
        renderer.text("No installed sandboxes.")
        return 0
    rows = [
        (name, ", ".join(link.name for link in links) if links else "(up to date)")
        for name, links in sorted(results.items())
    ]
    renderer.table(("SANDBOX", "NEW LINKS"), rows)
    return 0


def _cmd_restart(args: argparse.Namespace) -> int:
    runtime = _build_runtime(args)
    future = runtime.lifecycle.start_last(make_confirm(assume_yes=_opt(args, "yes")))
    handle = future.result(timeout=_RESTART_TIMEOUT_SECONDS)
    _render_launch(_renderer_for(args), handle)
    return 0


def _cmd_persist(args: argparse.Namespace) -> int:
    runtime = _build_runtime(args)
    scripts = runtime.promoter.persist(make_confirm(assume_yes=_opt(args, "yes")))

    renderer = _renderer_for(args)
    if scripts is None:
        renderer.text("Cancelled; nothing written.")
        return 1
    renderer.kv("Default", scripts.sandbox_home)
    renderer.kv("Wrapper", scripts.wrapper)
    renderer.kv("Unwrapper", scripts.unwrapper)
    if not _on_path(scripts.wrapper.parent):
        renderer.warning(f"{scripts.wrapper.parent} is not on PATH")
    return 0


def _cmd_return(args: argparse.Namespace) -> int:
    runtime = _build_runtime(args)
    removed = runtime.promoter.unpersist(make_confirm(assume_yes=_opt(args, "yes")))

    renderer = _renderer_for(args)
    if removed is None:
        renderer.text("Cancelled; nothing removed.")
        return 1
    if not removed:
        renderer.text("No wrapper scripts were present.")
        return 0
    renderer.heading("Removed:")
    renderer.items([str(path) for path in removed])
    return 0


def _cmd_list(args: argparse.Namespace) -> int:
    runtime = _build_runtime(args)
    installed = runtime.store.list_installed()
    inherited = tuple(runtime.config["inherit"]["paths"])
    last = runtime.session.last_sandbox_path

    sandboxes: list[dict[str, object]] = [
        {
            "name": name,
            "path": runtime.store.path_for(name).as_posix(),
            "links": describe_links(runtime.store.path_for(name), inherited),
        }
        for name in installed
    ]
    presets: list[dict[str, object]] = [
        {
            "name": descriptor.sandbox_name,
            "url": descriptor.url,
            "installed": descriptor.sandbox_name in installed,
        }
        for descriptor in runtime.lifecycle.presets
    ]
    payload: dict[str, object] = {
        "command": "list",
        "sandbox_root": runtime.store.root.as_posix(),
        "last_sandbox": last.as_posix() if last is not None else None,
        "sandboxes": sandboxes,
        "presets": presets,
        "options": list(runtime.lifecycle.available_options()),
    }

    if _opt(args, "json"):
        _print_json(payload)
        return 0

    renderer = _renderer_for(args)
    renderer.kv("Sandbox root", runtime.store.root)
    renderer.kv("Last launched", last.name if last is not None else "(none)")
    if installed:
        rows = [
            (
                name,
                "*" if last is not None and last.name == name else "",
                runtime.store.path_for(name).as_posix(),
            )
            for name in installed
        ]
        renderer.table(("SANDBOX", "LAST", "PATH"), rows, title="Installed:")
    else:
        renderer.section("Installed:")
        renderer.text("  (none)")
    renderer.table(
        ("PRESET", "INSTALLED", "URL"),
        [(str(p["name"]), "yes" if p["installed"] else "no", str(p["url"])) for p in presets],
        title="Presets:",
    )
    renderer.kv("Checkout options", ", ".join(runtime.lifecycle.available_options()) or "(none)")
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)

    if _opt(args, "json"):
        _print_json({"command": "config", "config": config})
        return 0

    renderer = _renderer_for(args)
    renderer.text(dump_effective_config(config))
    return 0


class _Check(NamedTuple):
    name: str
    passed: bool
    detail: str


def _cmd_doctor(args: argparse.Namespace) -> int:
    try:
        config = _load_effective_config(args)
    except CLIError as exc:
        checks = [_Check("config", False, str(exc)), _Check("git", False, "skipped")]
    else:
        checks = [_Check("config", True, "loaded successfully"), *_environment_checks(config)]
    healthy = all(check.passed for check in checks)

    if _opt(args, "json"):
        _print_json(
            {
                "command": "doctor",
                "checks": [
                    {"name": c.name, "status": "ok" if c.passed else "fail", "detail": c.detail}
                    for c in checks
                ],
            }
        )
        return 0 if healthy else 1

    renderer = _renderer_for(args)
    renderer.heading("play doctor")
    for check in checks:
        report = renderer.ok if check.passed else renderer.fail
        report(f"{check.name}: {check.detail}")
    renderer.text("All checks passed." if healthy else "Some checks failed.")
    return 0 if healthy else 1


def _environment_checks(config: Mapping[str, Any]) -> list[_Check]:
    application = config["application"]
    script_dir = Path(config["paths"]["script_dir"])
    sandbox_root = Path(config["paths"]["sandbox_root"])
    checks = [
        _executable_check("git", config["git"]["executable"], ()),
        _executable_check("application", application["executable"], (script_dir,)),
    ]

    if not application["require_display"]:
        checks.append(_Check("display", True, "not required"))
    else:
        windowed = supports_windowed_child()
        checks.append(
            _Check("display", windowed, "available" if windowed else "no DISPLAY/WAYLAND_DISPLAY")
        )

    if sandbox_root.is_dir():
        writable = os.access(sandbox_root, os.W_OK)
        checks.append(
            _Check("sandbox_root", writable, f"{sandbox_root} {'' if writable else 'not '}writable")
        )
    else:
        checks.append(_Check("sandbox_root", True, f"{sandbox_root} (created on first checkout)"))

    # Informational only: persist still writes scripts when the directory is off PATH.
    placement = "on PATH" if _on_path(script_dir) else "not on PATH (persist has no effect)"
    checks.append(_Check("script_dir", True, f"{script_dir} {placement}"))
    return checks


def _executable_check(name: str, executable: str, exclude: tuple[Path, ...]) -> _Check:
    found = which_excluding(executable, exclude=exclude)
    if found is None:
        return _Check(name, False, f"{executable!r} not found in PATH")
    return _Check(name, True, f"found at {found}")


# ---------------------------------------------------------------------------
# Helpers: config, wiring, output
# ---------------------------------------------------------------------------


def build_runtime(
    config: Mapping[str, Any],
    *,
    environ: Mapping[str, str] | None = None,
) -> Runtime:
    """Wire store, provisioner, launcher, promoter and lifecycle from ``config``."""

    env = dict(os.environ if environ is None else environ)
    paths = config["paths"]
    application = config["application"]
    git = config["git"]
    home_env_var = application["home_env_var"]
    real_home = Path(env.get(home_env_var) or Path.home())
    script_dir = Path(paths["script_dir"])

    store = SandboxStore(paths["sandbox_root"])
    session = Session()
    state_file = SessionStateFile(store.root / SESSION_STATE_FILE)
    state_file.load_into(session)

    bus = EventBus()
    linker = ContentLinker(real_home, config["inherit"]["paths"])
    provisioner = Provisioner(store, linker, git_executable=git["executable"])
    launcher = ProcessLauncher(
        session,
        bus,
        executable=application["executable"],
        args=application["args"],
        log_dir=paths["log_dir"],
        home_env_var=home_env_var,
        require_display=application["require_display"],
        exclude_dirs=(script_dir,),
        environ=env,
    )
    recorded = state_file.read_process()
    if recorded is not None and session.last_sandbox_path is not None:
        launcher.reattach(session.last_sandbox_path, recorded)
    promoter = Promoter(
        session,
        script_dir=script_dir,
        resolve_executable=launcher.resolve_executable,
        home_env_var=home_env_var,
        unwrapper_suffix=application["unwrapper_suffix"],
        original_home=real_home,
        executable_name=Path(application["executable"]).name,
    )
    lifecycle = SandboxLifecycle(
        store=store,
        provisioner=provisioner,
        linker=linker,
        launcher=launcher,
        bus=bus,
        presets=repo_descriptors(config),
        default_clone_options=clone_options_from(git["recursive"], git["depth"]),
        state_file=state_file,
    )
    return Runtime(
        config=config,
        store=store,
        session=session,
        state_file=state_file,
        launcher=launcher,
        promoter=promoter,
        lifecycle=lifecycle,
    )


def _build_runtime(args: argparse.Namespace) -> Runtime:
    config = _load_effective_config(args)
    setup_logging(
        config["observability"],
        log_dir=config["paths"]["log_dir"],
        verbose=_opt(args, "verbose"),
    )
    return build_runtime(config)


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    config_path = getattr(args, "config_path", None)
    try:
        return load_config(config_path)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _render_launch(renderer: CLIRenderer, handle: object) -> None:
    name = getattr(handle, "name", None) or getattr(handle, "channel", "?")
    renderer.kv("Launched", name)
    pid = getattr(handle, "pid", None)
    if pid is not None:
        renderer.kv("PID", pid)
    log_path = getattr(handle, "log_path", None)
    if log_path is not None:
        renderer.kv("Output", log_path)


def _on_path(directory: Path) -> bool:
    target = directory.expanduser().resolve(strict=False)
    for entry in os.environ.get("PATH", "").split(os.pathsep):
        if entry and Path(entry).expanduser().resolve(strict=False) == target:
            return True
    return False


def _print_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _renderer_for(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_opt(args, "no_color"), verbose=_opt(args, "verbose"))


def _opt(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "Runtime", "build_parser", "build_runtime", "run_cli"]
