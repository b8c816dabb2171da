import argparse
import functools
import json
import math
import sys

import anyio

from bundlesync.core.connectors.rest import HttpxBundleSource
from bundlesync.core.engine import SyncEngine
from bundlesync.core.lifecycle import is_terminal
from bundlesync.core.observability import configure_logging
from bundlesync.core.runtime.settings import SyncSettings, load_settings
from bundlesync.core.views import SyncSnapshot

EXIT_ERRORS = 2
EXIT_TIMEOUT = 3


def _print_snapshot(snap: SyncSnapshot, *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(snap.as_dict(), ensure_ascii=False))
        return
    state = snap.metadata.state if snap.metadata is not None else None
    print(f"bundle={snap.identity} view={snap.view_state.value} state={state or '(unknown)'} errors={len(snap.errors)}")
    if snap.restricted:
        print("Detail not available for this bundle")
        return
    for name, value in (("file", snap.content.file_contents), ("stdout", snap.content.stdout), ("stderr", snap.content.stderr)):
        if value is not None:
            print(f"--- {name} ---")
            print(value)
    for e in snap.errors:
        print(f"! {e}")


async def show_bundle(bundle_id: str, settings: SyncSettings) -> SyncSnapshot:
    """One metadata fetch and one contents fetch, concurrently."""
    async with HttpxBundleSource(settings) as source:
        engine = SyncEngine(source, settings=settings)
        engine.set_identity(bundle_id)
        async with anyio.create_task_group() as tg:
            tg.start_soon(engine.refresh_metadata)
            tg.start_soon(engine.refresh_contents)
        return engine.snapshot


async def watch_bundle(bundle_id: str, settings: SyncSettings, *, as_json: bool, timeout: float | None) -> int:
    """Print every snapshot until the bundle reaches a terminal state."""
    send, receive = anyio.create_memory_object_stream(max_buffer_size=math.inf)
    async with HttpxBundleSource(settings) as source:
        engine = SyncEngine(source, settings=settings)
        engine.subscribe(send.send_nowait)
        with anyio.move_on_after(timeout) as scope:
            async with engine:
                engine.set_identity(bundle_id)
                finishing = False
                async for snap in receive:
                    _print_snapshot(snap, as_json=as_json)
                    if finishing:
                        break
                    if snap.metadata is not None and is_terminal(snap.metadata.state):
                        # Contents may still trail the terminal metadata by one tick.
                        if await engine.refresh_contents():
                            _print_snapshot(engine.snapshot, as_json=as_json)
                            break
                        # A contents fetch is in flight; its snapshot is the last one.
                        finishing = True
        if scope.cancelled_caught:
            return EXIT_TIMEOUT
        return EXIT_ERRORS if engine.snapshot.errors else 0


def main(argv=None) -> int:
    argv = argv or sys.argv[1:]
    parser = argparse.ArgumentParser(prog="bundlesync", description="bundlesync-core CLI")
    sp = parser.add_subparsers(dest="cmd", required=True)

    def _common(p: argparse.ArgumentParser) -> None:
        p.add_argument("bundle_id", help="Bundle identity (uuid)")
        p.add_argument("--base-url", default=None, help="REST base URL (defaults to BUNDLESYNC_BASE_URL or settings)")
        p.add_argument("--config", default=None, help="Optional YAML settings file")
        p.add_argument("--json", action="store_true", help="Output machine-readable JSON")

    showp = sp.add_parser("show", help="Fetch a bundle's metadata and contents once")
    _common(showp)

    watchp = sp.add_parser("watch", help="Poll a bundle until it reaches a terminal state")
    _common(watchp)
    watchp.add_argument("--timeout", type=float, default=None, help="Give up after this many seconds")

    args = parser.parse_args(argv)
    overrides = {"base_url": args.base_url} if args.base_url else None
    settings = load_settings(overrides, config_file=args.config)
    configure_logging(settings)

    if args.cmd == "show":
        snap = anyio.run(show_bundle, args.bundle_id, settings)
        _print_snapshot(snap, as_json=args.json)
        return EXIT_ERRORS if snap.errors else 0

    if args.cmd == "watch":
        return anyio.run(functools.partial(watch_bundle, args.bundle_id, settings, as_json=args.json, timeout=args.timeout))

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
