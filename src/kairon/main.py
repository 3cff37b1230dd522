#!/usr/bin/env python3
"""
kairon: Synchronized live timer for multi-session event programs

Main entry point. Commands:

    relay     run the broadcast relay (stateless XSUB/XPUB forwarder)
    run       join a program's channel as editor, co-editor or viewer
    list      list stored programs (upcoming first)
    share     print a viewer, editor or self-contained link
    decode    print the program carried by a share token
    draft     generate a draft program from free text and store it
    export    print a program's schedule as plain text

Usage:
    # Relay on a well-known host
    kairon relay --config /etc/kairon/config.toml

    # Stage manager drives the clock
    kairon run --mode editor --program 5f0c...

    # Lobby display follows it
    kairon run --mode viewer --program 5f0c... --status-port 8081

Architecture:

    ┌──────────┐   PUB    ┌────────────────┐   SUB    ┌──────────┐
    │  editor  │─────────▶│  relay (XSUB/  │─────────▶│  viewer  │
    │          │◀─────────│     XPUB)      │◀─────────│   / TV   │
    └──────────┘   SUB    └────────────────┘   PUB    └──────────┘
         │                                                 │
         ▼                                                 ▼
    programs.json                                    GET /status
"""

import argparse
import copy
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional

import toml

# Set up logging before imports that use it
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger('kairon')

from .interfaces.program import Program
from .share.codec import decode_program
from .share.routes import Mode, editor_link, import_link, viewer_link
from .storage.program_store import PersistenceError, ProgramStore
from .timing import build_report, timeline


DEFAULT_CONFIG: Dict[str, Any] = {
    'sync': {
        'transport': 'zmq',
        'relay_publish': 'tcp://127.0.0.1:5570',
        'relay_subscribe': 'tcp://127.0.0.1:5571',
        'relay_frontend_bind': 'tcp://*:5570',
        'relay_backend_bind': 'tcp://*:5571',
    },
    'session': {
        'mode': 'editor',
        'auto_start': True,
        'tick_interval': 1.0,
        'autosave_delay': 2.0,
    },
    'storage': {
        'path': ProgramStore.DEFAULT_PATH,
    },
    'output': {
        'status_port': 8080,
        'status_bind': '0.0.0.0',
    },
    'drafts': {
        'endpoint': 'http://localhost:3000/api/generate',
        'timeout': 30.0,
    },
    'share': {
        'base_url': 'http://localhost:3000',
    },
}


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from TOML file, over the built-in defaults."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    if config_path and Path(config_path).exists():
        with open(config_path, 'r') as f:
            loaded = toml.load(f)
        for section, values in loaded.items():
            if isinstance(values, dict) and isinstance(config.get(section), dict):
                config[section].update(values)
            else:
                config[section] = values
    elif config_path:
        logger.warning(f"Config file {config_path} not found, using defaults")
    return config


def make_transport(config: Dict[str, Any]):
    sync_config = config['sync']
    kind = sync_config.get('transport', 'zmq')
    if kind == 'local':
        from .sync.transport import LocalBus
        return LocalBus()
    if kind == 'zmq':
        from .sync.transport import ZmqTransport
        return ZmqTransport(
            publish_address=sync_config['relay_publish'],
            subscribe_address=sync_config['relay_subscribe'],
        )
    raise ValueError(f"Unknown transport {kind!r} (expected 'local' or 'zmq')")


def resolve_program(args, store: ProgramStore) -> Program:
    """Program to join: from the store, from a share token, or a fresh one."""
    if args.import_token:
        program = decode_program(args.import_token)
        if program is not None:
            logger.info(f"Hydrating program from link: '{program.title}'")
            return program
        logger.error("Share link could not be decoded, starting with an empty program")
        return Program.new()

    if args.program:
        program = store.get(args.program)
        if program is not None:
            return program
        # Content arrives from a peer with the sync response.
        logger.warning(f"Program {args.program} not in local store, waiting for a peer to send it")
        return Program(id=args.program, title="", date="")

    return Program.new()


# --- Commands ----------------------------------------------------------------

def cmd_relay(args, config: Dict[str, Any]) -> int:
    from .sync.relay import SyncRelay

    sync_config = config['sync']
    relay = SyncRelay(
        frontend_address=sync_config['relay_frontend_bind'],
        backend_address=sync_config['relay_backend_bind'],
    )
    relay.run()
    return 0


def cmd_run(args, config: Dict[str, Any]) -> int:
    from .engine.live_session import LiveSession
    from .output.status_server import StatusServer

    session_config = config['session']
    store = ProgramStore(config['storage']['path'])
    program = resolve_program(args, store)

    transport = make_transport(config)
    transport.start()

    def notify(message: str):
        print(f"!! {message}", file=sys.stderr)

    live = LiveSession(
        transport,
        program,
        mode=Mode.parse(args.mode or session_config['mode']),
        store=store,
        auto_start=session_config.get('auto_start', True),
        tick_interval=session_config.get('tick_interval', 1.0),
        autosave_delay=session_config.get('autosave_delay', 2.0),
        notify=notify,
    )

    status_server = None
    status_port = config['output'].get('status_port', 0)
    if args.status_port is not None:
        status_port = args.status_port
    if status_port > 0:
        status_server = StatusServer(port=status_port, bind_address=config['output'].get('status_bind', '0.0.0.0'))
        status_server.set_session(live)
        status_server.start()

    try:
        live.run()
    finally:
        if status_server:
            status_server.stop()
        transport.stop()
    return 0


def cmd_list(args, config: Dict[str, Any]) -> int:
    store = ProgramStore(config['storage']['path'])
    programs = store.list()
    if args.date:
        programs = timeline.programs_on(programs, args.date)
        groups = [(f"On {args.date}", programs)]
    else:
        upcoming, past = timeline.split_upcoming(programs, date.today().isoformat())
        groups = [("Upcoming", upcoming), ("Past", past)]

    for heading, group in groups:
        print(f"{heading} ({len(group)})")
        for p in group:
            print(f"  {p.date or '----------'}  {p.start_time:>5}  {p.slot_count:3d} slots  {p.title}  [{p.id}]")
        print()
    return 0


def cmd_share(args, config: Dict[str, Any]) -> int:
    base_url = args.base_url or config['share']['base_url']
    if args.editor:
        print(editor_link(base_url, args.id))
    elif args.embed:
        store = ProgramStore(config['storage']['path'])
        program = store.get(args.id)
        if program is None:
            logger.error(f"Program {args.id} not found")
            return 1
        print(import_link(base_url, program))
    else:
        print(viewer_link(base_url, args.id))
    return 0


def cmd_decode(args, config: Dict[str, Any]) -> int:
    program = decode_program(args.token)
    if program is None:
        logger.error("Token does not contain a program")
        return 1
    print(program.to_json())
    return 0


def cmd_draft(args, config: Dict[str, Any]) -> int:
    from .drafts.generator import DraftGenerator

    if args.file == '-':
        raw_text = sys.stdin.read()
    else:
        raw_text = Path(args.file).read_text()

    drafts_config = config['drafts']
    generator = DraftGenerator(drafts_config['endpoint'], timeout=drafts_config.get('timeout', 30.0))
    try:
        program = generator.generate(raw_text)
    finally:
        generator.close()
    if program is None:
        logger.error("Draft generation failed")
        return 1

    store = ProgramStore(config['storage']['path'])
    try:
        store.create(program)
    except PersistenceError as e:
        logger.error(f"Could not store draft: {e}")
        return 1
    print(program.id)
    return 0


def cmd_export(args, config: Dict[str, Any]) -> int:
    store = ProgramStore(config['storage']['path'])
    program = store.get(args.id)
    if program is None:
        logger.error(f"Program {args.id} not found")
        return 1

    print(timeline.render_schedule_text(
        program,
        include_speakers=not args.no_speakers,
        include_details=not args.no_details,
    ))

    if args.report:
        report = build_report(program)
        print("Run report")
        print(f"  Completed sessions: {report.completed_sessions}")
        print(f"  Planned: {report.total_planned} min  Actual: {report.total_actual} min")
        print(f"  Adherence: {report.adherence_percent}%")
        for s in report.slots:
            print(f"    {s.title}: {s.planned} -> {s.actual} ({s.diff:+d})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='kairon: Synchronized live timer for multi-session event programs',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run the relay
    kairon relay

    # Drive a stored program
    kairon run --mode editor --program <id>

    # Follow it from another machine
    kairon run --mode viewer --program <id>

    # Print a viewer link
    kairon share <id> --viewer
        """
    )
    parser.add_argument(
        '--config', '-c',
        help='Path to TOML configuration file'
    )
    parser.add_argument(
        '--store',
        help='Program store file (overrides config)'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    commands = parser.add_subparsers(dest='command', required=True)

    commands.add_parser('relay', help='Run the broadcast relay')

    run = commands.add_parser('run', help='Join a program as editor, co-editor or viewer')
    run.add_argument('--mode', choices=[m.value for m in Mode], help='Client mode (default: from config)')
    source = run.add_mutually_exclusive_group()
    source.add_argument('--program', help='Stored program id')
    source.add_argument('--import', dest='import_token', help='Share token carrying the program')
    run.add_argument('--transport', choices=['local', 'zmq'], help='Sync transport (overrides config)')
    run.add_argument('--status-port', type=int, help='Status HTTP port (0 to disable)')
    run.add_argument('--no-auto-start', action='store_true', help='Do not start at the scheduled time')

    list_cmd = commands.add_parser('list', help='List stored programs')
    list_cmd.add_argument('--date', help='Only programs on this date (YYYY-MM-DD)')

    share = commands.add_parser('share', help='Print a share link')
    share.add_argument('id', help='Program id')
    kind = share.add_mutually_exclusive_group()
    kind.add_argument('--viewer', action='store_true', help='Read-only live view link (default)')
    kind.add_argument('--editor', action='store_true', help='Editor link')
    kind.add_argument('--embed', action='store_true', help='Link carrying the program itself')
    share.add_argument('--base-url', help='Client base URL (overrides config)')

    decode = commands.add_parser('decode', help='Decode a share token')
    decode.add_argument('token')

    draft = commands.add_parser('draft', help='Generate a draft program from free text')
    draft.add_argument('file', help="Text file ('-' for stdin)")

    export = commands.add_parser('export', help='Print a program schedule as text')
    export.add_argument('id', help='Program id')
    export.add_argument('--no-speakers', action='store_true', help='Omit speakers')
    export.add_argument('--no-details', action='store_true', help='Omit details')
    export.add_argument('--report', action='store_true', help='Append planned-vs-actual report')

    return parser


COMMANDS = {
    'relay': cmd_relay,
    'run': cmd_run,
    'list': cmd_list,
    'share': cmd_share,
    'decode': cmd_decode,
    'draft': cmd_draft,
    'export': cmd_export,
}


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    config = load_config(args.config)

    # Apply command-line overrides
    if args.store:
        config['storage']['path'] = args.store
    if getattr(args, 'transport', None):
        config['sync']['transport'] = args.transport
    if getattr(args, 'no_auto_start', False):
        config['session']['auto_start'] = False

    try:
        return COMMANDS[args.command](args, config)
    except PersistenceError as e:
        logger.error(f"Program store error: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
