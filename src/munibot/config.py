from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    discord_token: str = ""
    command_prefixes: tuple[str, ...] = ("~", "!")
    store_path: Path = Path("data/munibot.msgpack")
    store_namespace: str = "munibot"
    discord_invite_link: str = ""
    ventriloquist_ids: frozenset[int] = field(default_factory=frozenset)
    twitch_user: str = ""
    twitch_token: str = ""
    twitch_client_id: str = ""
    twitch_channels: tuple[str, ...] = ()
    twitch_autoban_prefixes: tuple[str, ...] = ()
    raid_msg_all: str = ""
    raid_msg_subs: str = ""

    @staticmethod
    def load(path: Path = Path("passwords.txt")) -> "Settings":
        values = _parse_passwords_file(path)
        prefixes = _split_list(values.get("COMMAND_PREFIXES", "~,!"))
        return Settings(
            discord_token=values.get("DISCORD_TOKEN", "").strip(),
            command_prefixes=tuple(prefixes) or ("~", "!"),
            store_path=Path(values.get("STORE_PATH", "data/munibot.msgpack")),
            store_namespace=values.get("STORE_NAMESPACE", "munibot").strip() or "munibot",
            discord_invite_link=values.get("DISCORD_INVITE_LINK", "").strip(),
            ventriloquist_ids=frozenset(_parse_ids(values.get("VENTRILOQUISTS", ""))),
            twitch_user=values.get("TWITCH_USER", "").strip().lower(),
            twitch_token=values.get("TWITCH_TOKEN", "").strip(),
            twitch_client_id=values.get("TWITCH_CLIENT_ID", "").strip(),
            twitch_channels=tuple(name.lower().lstrip("#") for name in _split_list(values.get("TWITCH_CHANNELS", ""))),
            twitch_autoban_prefixes=tuple(p.lower() for p in _split_list(values.get("TWITCH_AUTOBAN_PREFIXES", ""))),
            raid_msg_all=values.get("RAID_MSG_ALL", "").strip(),
            raid_msg_subs=values.get("RAID_MSG_SUBS", "").strip(),
        )

    def require_discord(self) -> None:
        if not self.discord_token:
            raise RuntimeError("DISCORD_TOKEN is required in passwords.txt to start the Discord bot.")

    def require_twitch(self) -> None:
        missing = [
            key
            for key, value in (
                ("TWITCH_USER", self.twitch_user),
                ("TWITCH_TOKEN", self.twitch_token),
                ("TWITCH_CLIENT_ID", self.twitch_client_id),
            )
            if not value
        ]
        if missing:
            raise RuntimeError(f"{', '.join(missing)} required in passwords.txt to start the Twitch bot.")


def _parse_passwords_file(path: Path) -> dict[str, str]:
    if not path.exists():
        raise RuntimeError("passwords.txt not found. Copy passwords.example.txt to passwords.txt and fill values.")
    values: dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip()
    return values


def _split_list(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _parse_ids(raw: str) -> list[int]:
    ids: list[int] = []
    for part in _split_list(raw):
        try:
            ids.append(int(part))
        except ValueError:
            continue
    return ids
