#!/usr/bin/env python3
"""Shell Chat CLI - Terminal client for the role chat backend.

A rich TUI that connects to the FastAPI backend via HTTP/SSE: pick a role,
stream its replies, and optionally speak them aloud while they arrive.
"""

import argparse
import asyncio
import json
import os
import signal
import sys
from typing import Any, Optional

import httpx
from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.style import Style

from rolechat.letta import extract_text_delta
from rolechat.services.tts import (
    HttpSynthesizer,
    PlaybackSequencer,
    StreamController,
    SubprocessAudioPlayer,
    SynthesisCache,
    VoiceConfig,
)

# Styles
USER_STYLE = Style(color="bright_blue", bold=True)
ASSISTANT_STYLE = Style(color="bright_green")
ERROR_STYLE = Style(color="red", bold=True)
INFO_STYLE = Style(color="cyan")

# Must stay below the server's TTS_AUDIO_TTL_SECONDS or cached locators 404
SPEECH_CACHE_TTL_SECONDS = float(os.getenv("SHELLCHAT_CACHE_TTL", "600"))


class ShellChat:
    """Terminal chat client for the role chat backend."""

    def __init__(self, server_url: str, role: Optional[str] = None, speak: bool = False):
        self.server_url = server_url.rstrip("/")
        self.initial_role = role
        self.speak_enabled = speak
        self.console = Console()
        self.running = True
        self.roles: list[dict[str, Any]] = []
        self.role: Optional[dict[str, Any]] = None
        self._synthesizer: Optional[HttpSynthesizer] = None
        self._controller: Optional[StreamController] = None

    def _speech(self) -> StreamController:
        """Build the speech pipeline on first use."""
        if self._controller is None:
            player = SubprocessAudioPlayer(self.server_url)
            if not player.available:
                self.console.print(
                    f"[dim]{player.command[0]} not found; audio will fail to play[/dim]"
                )
            self._synthesizer = HttpSynthesizer(self.server_url)
            self._controller = StreamController(
                SynthesisCache(self._synthesizer, ttl_seconds=SPEECH_CACHE_TTL_SECONDS),
                PlaybackSequencer(player),
            )
        if self.role is not None:
            self._controller.voice = _voice_for(self.role)
        return self._controller

    async def _check_health(self) -> bool:
        """Check if backend is reachable."""
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(f"{self.server_url}/health")
                if resp.status_code == 200:
                    data = resp.json()
                    self.console.print(
                        f"[dim]Connected to backend. TTS: {data.get('tts_provider', '?')}[/dim]"
                    )
                    return True
        except httpx.HTTPError as e:
            self.console.print(
                f"[error]Cannot connect to backend: {e}[/error]", style=ERROR_STYLE
            )
        return False

    async def _fetch_roles(self) -> None:
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                resp = await client.get(f"{self.server_url}/api/roles")
                resp.raise_for_status()
                self.roles = resp.json()
        except httpx.HTTPError as e:
            self.console.print(
                f"[error]Failed to list roles: {e}[/error]", style=ERROR_STYLE
            )

    async def _list_roles(self) -> None:
        await self._fetch_roles()
        if not self.roles:
            self.console.print("[dim]No roles yet. Create one or run /sync[/dim]")
            return
        self.console.print("\n[bold]Roles:[/bold]")
        for i, role in enumerate(self.roles):
            marker = " [active]" if self.role and role["id"] == self.role["id"] else ""
            voice = role.get("voice") or "?"
            self.console.print(f"  {i}. {role['name']}{marker} - voice {voice}")
        self.console.print()

    async def _sync_roles(self) -> None:
        try:
            async with httpx.AsyncClient(timeout=60.0) as client:
                resp = await client.post(f"{self.server_url}/api/roles/sync")
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as e:
            self.console.print(f"[error]Sync failed: {e}[/error]", style=ERROR_STYLE)
            return
        self.console.print(
            f"[info]Synced {data.get('count', 0)} agent(s), "
            f"removed {data.get('deletedCount', 0)}[/info]",
            style=INFO_STYLE,
        )
        await self._fetch_roles()

    async def _use_role(self, index_or_name: str) -> bool:
        if not self.roles:
            await self._fetch_roles()
        try:
            index = int(index_or_name)
        except ValueError:
            index = next(
                (
                    i
                    for i, r in enumerate(self.roles)
                    if r.get("name", "").lower() == index_or_name.lower()
                ),
                -1,
            )
        if not 0 <= index < len(self.roles):
            self.console.print(
                f"[error]Role '{index_or_name}' not found[/error]", style=ERROR_STYLE
            )
            return False

        if self._controller is not None:
            self._controller.stop()
        self.role = self.roles[index]
        self.console.print(
            f"[info]Now talking to {self.role['name']}[/info]", style=INFO_STYLE
        )
        return True

    async def _show_history(self) -> None:
        if self.role is None:
            self.console.print("[dim]Pick a role first with /use <n>[/dim]")
            return
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                resp = await client.get(
                    f"{self.server_url}/api/roles/{self.role['id']}/history"
                )
                resp.raise_for_status()
                messages = resp.json()
        except httpx.HTTPError as e:
            self.console.print(
                f"[error]Failed to load history: {e}[/error]", style=ERROR_STYLE
            )
            return
        if not messages:
            self.console.print("[dim]No messages yet[/dim]")
            return
        for message in messages:
            if message["role"] == "user":
                self.console.print(f"You: {message['content']}", style=USER_STYLE)
            else:
                self.console.print(Markdown(message["content"]), style=ASSISTANT_STYLE)

    async def _clear_history(self) -> None:
        if self.role is None:
            self.console.print("[dim]Pick a role first with /use <n>[/dim]")
            return
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                resp = await client.delete(
                    f"{self.server_url}/api/messages/{self.role['id']}"
                )
                resp.raise_for_status()
                deleted = resp.json().get("deleted", 0)
        except httpx.HTTPError as e:
            self.console.print(
                f"[error]Failed to clear history: {e}[/error]", style=ERROR_STYLE
            )
            return
        self.console.print(
            f"[info]Deleted {deleted} message(s)[/info]", style=INFO_STYLE
        )

    def _toggle_speech(self) -> None:
        self.speak_enabled = not self.speak_enabled
        if not self.speak_enabled and self._controller is not None:
            self._controller.stop()
        state = "on" if self.speak_enabled else "off"
        self.console.print(f"[info]Speech {state}[/info]", style=INFO_STYLE)

    def _stop_speech(self) -> None:
        if self._controller is not None:
            self._controller.stop()
        self.console.print("[dim]Audio stopped[/dim]")

    def _show_help(self) -> None:
        """Show available commands."""
        help_text = """
[bold]Commands:[/bold]
  /help              Show this help message
  /roles             List roles
  /sync              Pull roles from Letta Cloud
  /use <n|name>      Talk to a role
  /history           Show the current role's messages
  /clear             Delete the current role's messages
  /speak             Toggle speaking replies aloud
  /stop              Stop audio that is playing or queued
  /quit              Exit shell-chat

[bold]Shortcuts:[/bold]
  Ctrl+C             Cancel current request
  Ctrl+D             Exit shell-chat
"""
        self.console.print(
            Panel(help_text.strip(), title="Shell Chat Help", border_style="blue")
        )

    async def _handle_command(self, cmd: str) -> bool:
        """Handle slash commands. Returns True if handled."""
        parts = cmd.strip().split(maxsplit=1)
        if not parts:
            return False

        command = parts[0].lower()

        if command == "/help":
            self._show_help()
        elif command == "/roles":
            await self._list_roles()
        elif command == "/sync":
            await self._sync_roles()
        elif command == "/use":
            if len(parts) > 1:
                await self._use_role(parts[1])
            else:
                self.console.print("[dim]Usage: /use <n|name>[/dim]")
        elif command == "/history":
            await self._show_history()
        elif command == "/clear":
            await self._clear_history()
        elif command == "/speak":
            self._toggle_speech()
        elif command == "/stop":
            self._stop_speech()
        elif command == "/quit":
            self.running = False
        else:
            return False
        return True

    async def _stream_chat(self, message: str) -> None:
        """Send message and stream the role's reply via SSE."""
        if self.role is None:
            self.console.print("[dim]Pick a role first with /use <n>[/dim]")
            return
        controller = self._speech() if self.speak_enabled else None
        if controller is not None:
            controller.stop()

        full_response = ""

        try:
            async with httpx.AsyncClient(timeout=None) as client:
                async with client.stream(
                    "POST",
                    f"{self.server_url}/api/messages/{self.role['id']}",
                    json={"message": message},
                    headers={"Accept": "text/event-stream"},
                ) as response:
                    if response.status_code != 200:
                        error = await response.aread()
                        self.console.print(
                            f"[error]Error {response.status_code}: {error.decode()}[/error]",
                            style=ERROR_STYLE,
                        )
                        return

                    with Live(console=self.console, refresh_per_second=10) as live:
                        async for line in response.aiter_lines():
                            line = line.strip()
                            if not line.startswith("data:"):
                                continue
                            data = line[5:].strip()

                            if data == "[DONE]":
                                break

                            try:
                                parsed = json.loads(data)
                            except json.JSONDecodeError:
                                continue

                            if isinstance(parsed, dict) and "error" in parsed:
                                self.console.print(
                                    f"[error]{parsed['error']}: {parsed.get('detail', '')}[/error]",
                                    style=ERROR_STYLE,
                                )
                                continue

                            content = extract_text_delta(parsed)
                            if not content:
                                continue
                            full_response += content
                            live.update(Markdown(full_response))
                            if controller is not None:
                                controller.append_stream(content)

            if controller is not None:
                await controller.flush_stream()

        except httpx.ReadTimeout:
            self.console.print("[error]Request timed out[/error]", style=ERROR_STYLE)
        except asyncio.CancelledError:
            if controller is not None:
                controller.stop()
            self.console.print("\n[dim]Request cancelled[/dim]")
        except httpx.HTTPError as e:
            self.console.print(f"[error]Error: {e}[/error]", style=ERROR_STYLE)

    async def run(self) -> None:
        """Main chat loop."""
        if not await self._check_health():
            return

        await self._fetch_roles()
        if self.initial_role is not None:
            await self._use_role(self.initial_role)
        elif len(self.roles) == 1:
            await self._use_role("0")

        self.console.print()
        self.console.print(
            "[bold]Shell Chat[/bold] - Type /help for commands, Ctrl+D to exit",
            style=INFO_STYLE,
        )
        self.console.print()

        try:
            while self.running:
                try:
                    # Prompt in a thread so queued audio keeps playing
                    user_input = await asyncio.to_thread(
                        Prompt.ask, "[bold blue]You[/bold blue]"
                    )
                    if not user_input.strip():
                        continue

                    if user_input.startswith("/"):
                        handled = await self._handle_command(user_input)
                        if handled:
                            continue

                    if self.role is None:
                        self.console.print("[dim]Pick a role first with /use <n>[/dim]")
                        continue

                    self.console.print()
                    await self._stream_chat(user_input)
                    self.console.print()

                except EOFError:
                    # Ctrl+D
                    self.console.print("\n[dim]Goodbye![/dim]")
                    break
                except KeyboardInterrupt:
                    self.console.print()
                    continue
        finally:
            if self._controller is not None:
                self._controller.stop()
                await self._controller.cache.aclose()
            if self._synthesizer is not None:
                await self._synthesizer.aclose()


def _voice_for(role: dict[str, Any]) -> VoiceConfig:
    return VoiceConfig(
        voice=role.get("voice"),
        speed=role.get("speed"),
        pitch=role.get("pitch"),
        style=role.get("style"),
    )


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Shell Chat - Terminal client for the role chat backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  shell-chat                            Connect to localhost:3001
  shell-chat --server http://pi:3001    Connect to remote server
  shell-chat --role 0 --speak           Talk to the first role out loud

Environment Variables:
  SHELLCHAT_SERVER    Default server URL
""",
    )
    parser.add_argument(
        "--server",
        "-s",
        default=os.environ.get("SHELLCHAT_SERVER", "http://localhost:3001"),
        help="Backend server URL (default: http://localhost:3001)",
    )
    parser.add_argument(
        "--role",
        "-r",
        default=None,
        help="Role index or name to select on startup",
    )
    parser.add_argument(
        "--speak",
        action="store_true",
        help="Speak replies aloud while they stream (needs ffplay)",
    )

    args = parser.parse_args()

    def signal_handler(sig, frame):
        print("\nExiting...")
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)

    chat = ShellChat(server_url=args.server, role=args.role, speak=args.speak)
    try:
        asyncio.run(chat.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
