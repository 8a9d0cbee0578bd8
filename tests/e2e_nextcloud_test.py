import asyncio
import hashlib
import json
import logging
import os
import subprocess
import sys
import tempfile
import uuid
from pathlib import Path

from ncpasswords.models import (
    CreateFolder,
    CreatePassword,
    FolderDetails,
    PasswordSearch,
    UpdatePassword,
)
from ncpasswords.session import PasswordsClient
from ncpasswords.settings import UserSetting

logger = logging.getLogger("e2e")


def _run(command: list[str], *, env: dict[str, str], secrets: tuple[str, ...]) -> str:
    safe_cmd = " ".join(command)
    for secret in secrets:
        safe_cmd = safe_cmd.replace(secret, "***")
    logger.info(f"Running: {safe_cmd}")
    try:
        result = subprocess.run(
            command,
            check=False,
            capture_output=True,
            text=True,
            env=env,
            timeout=120,
        )
    except subprocess.TimeoutExpired as exc:
        raise AssertionError(f"Command timed out: {safe_cmd}") from exc

    stdout, stderr = result.stdout, result.stderr
    for secret in secrets:
        stdout = stdout.replace(secret, "***")
        stderr = stderr.replace(secret, "***")
    if result.returncode != 0:
        raise AssertionError(
            f"Command failed ({result.returncode}): {safe_cmd}\n"
            f"stdout:\n{stdout}\n"
            f"stderr:\n{stderr}"
        )
    return result.stdout.strip()


async def _exercise_library(url: str, user: str, password: str) -> None:
    label = f"ncpasswords-e2e-{uuid.uuid4().hex[:8]}"
    secret = uuid.uuid4().hex
    digest = hashlib.sha1(secret.encode()).hexdigest()

    async with await PasswordsClient.login(url, user, password) as client:
        lifetime = await client.settings.get_one(UserSetting.SESSION_LIFETIME)
        logger.info(f"Session lifetime is {lifetime}s")

        folder = await client.folder.create(CreateFolder(label))
        created = await client.password.create(
            CreatePassword(label, secret, digest)
            .with_username("e2e-user")
            .with_url("https://example.com")
            .with_folder(folder.id)
        )
        try:
            fetched = await client.folder.get(
                folder.id, FolderDetails().with_passwords()
            )
            if [p.id for p in fetched.passwords or []] != [created.id]:
                raise AssertionError(f"Folder does not contain the new password: {fetched}")

            found = await client.password.find(PasswordSearch().and_favorite(False))
            if created.id not in {p.id for p in found}:
                raise AssertionError("New password not found by search")

            updated = await client.password.update(
                UpdatePassword(created.id, label, secret, digest).with_notes("updated")
            )
            if updated.revision == created.revision:
                raise AssertionError("Update did not create a new revision")
            current = await client.password.get(created.id)
            if current.notes != "updated":
                raise AssertionError(f"Update was not stored: {current.notes!r}")
        finally:
            trashed = await client.password.delete(created.id)
            if not trashed.in_trash:
                raise AssertionError("First delete should move the password to trash")
            await client.password.delete(created.id)
            await client.folder.delete(folder.id)
            await client.folder.delete(folder.id)


def _exercise_cli(url: str, user: str, password: str) -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        env = os.environ.copy()
        env["NCPASSWORDS_URL"] = url
        env["NCPASSWORDS_USER"] = user
        env["NCPASSWORDS_PASSWORD"] = password
        env["NCPASSWORDS_STATE_FILE"] = str(Path(tmpdir) / "session.json")
        cli = [sys.executable, "-m", "ncpasswords"]
        secrets = (password,)

        _ = _run([*cli, "login"], env=env, secrets=secrets)
        folders = json.loads(
            _run([*cli, "list", "folders", "--json"], env=env, secrets=secrets)
        )
        if not isinstance(folders, list):
            raise AssertionError(f"Expected a JSON list of folders, got {folders!r}")
        generated = _run(
            [*cli, "generate", "--strength", "2"], env=env, secrets=secrets
        )
        if not generated:
            raise AssertionError("Password generator returned nothing")
        _ = _run([*cli, "logout"], env=env, secrets=secrets)
        if Path(env["NCPASSWORDS_STATE_FILE"]).exists():
            raise AssertionError("Logout should remove the session state file")


def main() -> None:
    logging.basicConfig(
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
        level=logging.INFO,
    )
    logger.setLevel(logging.DEBUG)

    url = os.environ.get("NCPASSWORDS_URL", "http://localhost:8080")
    user = os.environ.get("NCPASSWORDS_USER", "admin")
    password = os.environ.get("NCPASSWORDS_PASSWORD", "admin")

    logger.info("Exercising the library against the server")
    asyncio.run(_exercise_library(url, user, password))
    logger.info("Exercising the command line client against the server")
    _exercise_cli(url, user, password)

    print("nextcloud end-to-end integration test passed")


if __name__ == "__main__":
    main()
