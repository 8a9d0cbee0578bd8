import asyncio
import getpass
import json
import logging
import os
import sys
from argparse import ArgumentParser, BooleanOptionalAction, Namespace
from pathlib import Path
from typing import Any, NoReturn

from rich.logging import RichHandler
from rich.table import Table

from . import VERBOSE, __version__
from ._console import console, out
from .exceptions import DecodeError, DisconnectError, PasswordsError
from .schema import encode_value
from .service import GeneratePassword
from .session import PasswordsClient, SessionState
from .settings import parse_setting, setting_from_name

logger = logging.getLogger(__name__)

_DEFAULT_STATE_FILE = Path.home() / ".ncpasswords-session.json"

# entity name on the command line -> (client attribute, table columns)
_ENTITIES: dict[str, tuple[str, tuple[str, ...]]] = {
    "folders": ("folder", ("id", "label", "parent", "favorite")),
    "passwords": ("password", ("id", "label", "username", "url", "folder")),
    "tags": ("tag", ("id", "label", "color", "favorite")),
    "shares": ("share", ("id", "password", "receiver", "editable", "expires")),
}


class MyArgParser(ArgumentParser):
    """Argument parser that prints help on error instead of just usage."""

    def error(self, message: str) -> NoReturn:
        """Print the error message followed by full help, then exit."""
        _ = sys.stderr.write(f"{self.prog}: {message}\n\n")
        self.print_help()
        sys.exit(2)


def _parse_bool_env(value: str | None, *, env_var: str) -> bool | None:
    """Parse an environment variable string into a boolean, or ``None`` if unset."""
    if value is None:
        return None

    normalized = value.strip().lower()
    true_values = {"1", "true", "yes", "y", "on"}
    false_values = {"0", "false", "no", "n", "off"}

    if normalized in true_values:
        return True
    if normalized in false_values:
        return False

    raise ValueError(
        f"Invalid boolean value for {env_var}: {value!r}. "
        "Use one of 1/0, true/false, yes/no, on/off."
    )


def _with_env[T](arg_value: T | None, env_var: str) -> T | str | None:
    """Return *arg_value* if set, otherwise fall back to the named environment variable."""
    if arg_value is not None:
        return arg_value
    return os.environ.get(env_var)


def _argparser() -> MyArgParser:
    """Build and return the CLI argument parser with all flags and env-var support."""
    parser = MyArgParser(description="Nextcloud Passwords command line client")

    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-s",
        "--state-file",
        dest="state_file",
        metavar="FILE",
        help=f"Session state file (default: {_DEFAULT_STATE_FILE}, env: NCPASSWORDS_STATE_FILE)",
        default=None,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        dest="verbose",
        help="Verbose output (env: NCPASSWORDS_VERBOSE)",
        action="store_true",
        default=None,
    )
    parser.add_argument(
        "-d",
        "--debug",
        dest="debug",
        help="Debug output, includes third-party library logs (env: NCPASSWORDS_DEBUG)",
        action="store_true",
        default=None,
    )

    commands = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)

    login = commands.add_parser("login", help="Open a session and store it")
    login.add_argument(
        "-u",
        "--url",
        dest="url",
        metavar="URL",
        help="Nextcloud base URL (env: NCPASSWORDS_URL)",
        default=None,
    )
    login.add_argument(
        "-U",
        "--user",
        dest="user",
        metavar="USER",
        help="Nextcloud user name (env: NCPASSWORDS_USER)",
        default=None,
    )
    login.add_argument(
        "-p",
        "--password",
        dest="password",
        metavar="PASSWORD",
        help="Nextcloud app password (env: NCPASSWORDS_PASSWORD)",
        default=None,
    )

    commands.add_parser("logout", help="Close the stored session")

    list_cmd = commands.add_parser("list", help="List folders, passwords, tags or shares")
    list_cmd.add_argument("entity", choices=sorted(_ENTITIES))
    list_cmd.add_argument(
        "--details",
        metavar="FLAG",
        nargs="+",
        help="Detail flags to include, e.g. revisions tags",
        default=None,
    )
    list_cmd.add_argument(
        "--json", dest="as_json", help="Print JSON", action="store_true"
    )

    show = commands.add_parser("show", help="Show a single record")
    show.add_argument("entity", choices=sorted(_ENTITIES))
    show.add_argument("id", metavar="ID")
    show.add_argument(
        "--details",
        metavar="FLAG",
        nargs="+",
        help="Detail flags to include, e.g. revisions tags",
        default=None,
    )

    settings = commands.add_parser("settings", help="Read or change settings")
    settings.add_argument("names", metavar="NAME", nargs="*", help="Settings to read")
    settings.add_argument(
        "--set",
        dest="assignments",
        metavar="NAME=VALUE",
        nargs="+",
        help="User or client settings to change",
        default=None,
    )

    generate = commands.add_parser("generate", help="Generate a password")
    generate.add_argument(
        "--strength", dest="strength", metavar="N", type=int, default=None
    )
    generate.add_argument(
        "--numbers", dest="numbers", action=BooleanOptionalAction, default=None
    )
    generate.add_argument(
        "--special", dest="special", action=BooleanOptionalAction, default=None
    )

    return parser


def _read_password(arg: str | None, prompt: str) -> str:
    """Return *arg* if provided, otherwise prompt interactively for a password."""
    if not arg:
        arg = getpass.getpass(prompt=prompt)

    return arg


# ---------------------------------------------------------------------------
# Session state file
# ---------------------------------------------------------------------------


def _load_state(path: Path) -> SessionState | None:
    if not path.exists():
        return None
    try:
        return SessionState.from_json(json.loads(path.read_text(encoding="utf-8")))
    except (ValueError, DecodeError) as exc:
        logger.warning(f"Ignoring unreadable session state in {path}: {exc}")
        return None


def _save_state(path: Path, state: SessionState) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    # Contains credentials; create it private before writing.
    path.touch(mode=0o600, exist_ok=True)
    path.chmod(0o600)
    _ = path.write_text(json.dumps(state.to_json()), encoding="utf-8")
    logger.log(VERBOSE, f"Stored session state in {path}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cell(value: Any) -> str:
    encoded = encode_value(value)
    if encoded is None:
        return ""
    if isinstance(encoded, dict | list):
        return json.dumps(encoded)
    return str(encoded)


def _details(client: PasswordsClient, entity: str, flags: list[str] | None) -> Any:
    if not flags:
        return None
    api = getattr(client, _ENTITIES[entity][0])
    return api.details_type(*flags)


async def _run_command(args: Namespace, client: PasswordsClient) -> None:
    if args.command == "list":
        attr, columns = _ENTITIES[args.entity]
        records = await getattr(client, attr).list(
            _details(client, args.entity, args.details)
        )
        if args.as_json:
            out.print_json(data=[r.to_json() for r in records])
            return
        table = Table(*columns, title=args.entity.capitalize())
        for record in records:
            table.add_row(*(_cell(getattr(record, c)) for c in columns))
        out.print(table)
    elif args.command == "show":
        attr, _columns = _ENTITIES[args.entity]
        record = await getattr(client, attr).get(
            args.id, _details(client, args.entity, args.details)
        )
        out.print_json(data=record.to_json())
    elif args.command == "settings":
        if args.assignments:
            values: dict[Any, Any] = {}
            for assignment in args.assignments:
                name, sep, raw = assignment.partition("=")
                if not sep:
                    raise ValueError(f"Expected NAME=VALUE, got {assignment!r}")
                setting = setting_from_name(name)
                values[setting] = parse_setting(setting, raw)
            result = await client.settings.set(values)
        elif args.names:
            result = await client.settings.get(
                *(setting_from_name(n) for n in args.names)
            )
        else:
            result = await client.settings.list()
        out.print_json(data=result)
    elif args.command == "generate":
        options = GeneratePassword()
        if args.strength is not None:
            options = options.with_strength(args.strength)
        if args.numbers is not None:
            options = options.with_numbers(args.numbers)
        if args.special is not None:
            options = options.with_special(args.special)
        generated = await client.service.generate_password(options)
        out.print(generated.password, markup=False, highlight=False)


async def _main(args: Namespace, state_file: Path) -> None:
    state = _load_state(state_file)

    if args.command == "login":
        url = _with_env(args.url, "NCPASSWORDS_URL")
        user = _with_env(args.user, "NCPASSWORDS_USER")
        if not url or not user:
            raise ValueError("login requires --url and --user")
        password = _read_password(
            _with_env(args.password, "NCPASSWORDS_PASSWORD"),
            "Please enter your Nextcloud app password: ",
        )
        client = await PasswordsClient.login(url, user, password)
        _save_state(state_file, client.session_state())
        await client.release()
        logger.info(f"Logged in to {url} as {user}")
        return

    if state is None:
        raise ValueError(f"No stored session in {state_file}; run 'login' first")

    client = await PasswordsClient.resume(state)
    if args.command == "logout":
        try:
            await client.close()
        finally:
            state_file.unlink(missing_ok=True)
        logger.info("Logged out")
        return

    try:
        await _run_command(args, client)
        _save_state(state_file, client.session_state())
    finally:
        await client.release()


def main() -> None:
    """Entry point: parse arguments, resolve env vars, and run the command."""
    args: Namespace = _argparser().parse_args()

    try:
        verbose = (
            args.verbose
            if args.verbose is not None
            else _parse_bool_env(
                os.environ.get("NCPASSWORDS_VERBOSE"), env_var="NCPASSWORDS_VERBOSE"
            )
        )
        debug = (
            args.debug
            if args.debug is not None
            else _parse_bool_env(
                os.environ.get("NCPASSWORDS_DEBUG"), env_var="NCPASSWORDS_DEBUG"
            )
        )
    except ValueError as exc:
        _ = sys.stderr.write(f"ERROR: {exc}\n\n")
        _argparser().print_help()
        sys.exit(2)

    verbose = verbose if verbose is not None else False
    debug = debug if debug is not None else False
    state_file = Path(
        _with_env(args.state_file, "NCPASSWORDS_STATE_FILE") or _DEFAULT_STATE_FILE
    )

    # logging
    #   default : INFO via RichHandler, httpx silenced
    #   -v      : VERBOSE for ncpasswords, session and write operations shown
    #   -d      : DEBUG for everything, raw format, httpx included
    if debug:
        logging.basicConfig(
            format="%(levelname)s: %(name)s: %(message)s", level=logging.DEBUG
        )
    else:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(console=console, show_path=False, markup=False)],
        )
        logging.getLogger("httpx").setLevel(logging.WARNING)
        if verbose:
            logging.getLogger("ncpasswords").setLevel(VERBOSE)

    try:
        asyncio.run(_main(args, state_file))
    except DisconnectError as exc:
        logger.warning(str(exc))
    except (PasswordsError, ValueError) as exc:
        logger.error(str(exc))
        sys.exit(1)


if __name__ == "__main__":
    main()
