#!/usr/bin/env python3
"""Interactive chat CLI for testing the claims review assistant."""

import json
import sys

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from claimdesk.models.conversation import Message, TextPart, ToolInvocationPart
from claimdesk.models.events import TextDeltaEvent, TranscriptBuilder, stream_event_adapter
from claimdesk.services.history import attach_decision
from claimdesk.services.tool_states import GatedToolCall

# Outcome labels offered per gated tool: (positive, negative)
DECISION_OUTCOMES = {
    "suggestAction": ("approved", "rejected"),
    "draftAppeal": ("accepted", "discarded"),
    "updateClaimStatus": ("confirmed", "cancelled"),
}


class ChatCLI:
    """Interactive chat interface for the claims review assistant."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.messages: list[Message] = []
        self.claim_id: str | None = None
        self.console = Console()
        self.client = httpx.Client(timeout=120.0)

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]Claimdesk - Claims Review Assistant[/bold blue]\n"
                "Ask about a claim; proposed actions wait for your decision.\n"
                "Commands: /help, /claim <id>, /clear, /quit",
                border_style="blue",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print("[green]Connected to the claims assistant[/green]\n")
        self._show_claims()

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")
                command = user_input.strip().lower()

                if command in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif command == "/help":
                    self._show_help()
                    continue
                elif command == "/clear":
                    self.messages = []
                    self.claim_id = None
                    self.console.print("[yellow]Conversation cleared[/yellow]")
                    continue
                elif command.startswith("/claim"):
                    self.claim_id = user_input.strip()[len("/claim") :].strip() or None
                    self.console.print(f"[yellow]Working claim: {self.claim_id or 'none'}[/yellow]")
                    continue
                elif command == "":
                    continue

                self.messages.append(Message(role="user", parts=[TextPart(text=user_input)]))
                self._run_turn()

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _run_turn(self) -> None:
        """Stream one turn, then collect decisions and continue while any were made."""
        while True:
            builder = self._stream_turn()
            if builder is None:
                return

            self.messages.append(builder.message)

            if builder.error:
                self.console.print(f"[red]{builder.error}[/red]")
                return
            if builder.finish_reason == "max-steps":
                self.console.print("[yellow]The assistant hit its tool limit for this turn.[/yellow]")
            if builder.finish_reason != "awaiting-decision":
                return

            if not self._collect_decisions(builder.message):
                return

    def _stream_turn(self) -> TranscriptBuilder | None:
        """Post the conversation and render the event stream as it arrives."""
        payload = {"messages": [m.model_dump(by_alias=True, exclude_none=True) for m in self.messages]}
        if self.claim_id:
            payload["claimId"] = self.claim_id

        builder = TranscriptBuilder()
        self.console.print("\n[bold green]Assistant[/bold green]")

        try:
            with self.client.stream("POST", f"{self.base_url}/chat", json=payload) as response:
                if response.status_code != 200:
                    response.read()
                    self.console.print(f"[red]API Error: {response.status_code} - {response.text}[/red]")
                    return None

                for line in response.iter_lines():
                    if not line.startswith("data: "):
                        continue
                    event = stream_event_adapter.validate_json(line[len("data: ") :])
                    builder.apply(event)
                    if isinstance(event, TextDeltaEvent):
                        self.console.print(event.delta, end="")

        except httpx.HTTPError as e:
            self.console.print(f"[red]Connection error: {e}[/red]")
            return None

        self.console.print()
        for part in builder.message.tool_parts():
            self._display_tool_part(part)
        return builder

    def _collect_decisions(self, message: Message) -> bool:
        """Ask for a decision on every proposed card; True when all were decided."""
        for part in message.tool_parts():
            if part.state != "proposed":
                continue

            positive, negative = DECISION_OUTCOMES.get(part.tool_name, ("approved", "rejected"))
            choice = Prompt.ask(
                f"[bold]{part.tool_name}[/bold] {part.tool_call_id}",
                choices=[positive, negative, "later"],
                default=positive,
            )
            if choice == "later":
                return False

            body: dict = {"outcome": choice}
            if part.tool_name == "draftAppeal" and choice == positive:
                edited = Prompt.ask("Edited letter body (leave empty to keep the draft)", default="")
                if edited.strip():
                    body["finalBody"] = edited

            response = self.client.post(f"{self.base_url}/tool-calls/{part.tool_call_id}/decision", json=body)
            if response.status_code != 200:
                self.console.print(f"[red]Decision failed: {response.status_code} - {response.text}[/red]")
                return False

            data = response.json()
            decided = GatedToolCall.model_validate({**data, "input": part.input})
            self.messages = attach_decision(self.messages, decided)
            self.console.print(f"[green]{part.tool_name} {data['state']}[/green]")
            if data.get("claim"):
                self.console.print(f"[dim]Claim {data['claim']['claimId']} is now {data['claim']['status']}[/dim]")

        return True

    def _display_tool_part(self, part: ToolInvocationPart) -> None:
        """Render a tool call as a card."""
        if part.state == "output-error":
            self.console.print(
                Panel(part.error_text or "", title=f"[red]{part.tool_name} failed[/red]", border_style="red")
            )
            return

        if part.state == "output-available":
            self.console.print(f"[dim]{part.tool_name}({json.dumps(part.input)}) done[/dim]")
            return

        if part.tool_name == "draftAppeal":
            content = Markdown(f"**{part.input.get('subject', '')}**\n\n{part.input.get('body', '')}")
        else:
            content = "\n".join(f"[bold]{key}[/bold]: {value}" for key, value in part.input.items())

        self.console.print(
            Panel(
                content,
                title=f"[yellow]{part.tool_name} - awaiting decision[/yellow]",
                border_style="yellow",
                padding=(1, 2),
            )
        )

    def _show_claims(self) -> None:
        """Show the claims the service knows about."""
        try:
            response = self.client.get(f"{self.base_url}/claims")
        except httpx.HTTPError:
            return
        if response.status_code != 200:
            return

        table = Table(title="Available Claims")
        table.add_column("Claim")
        table.add_column("Patient")
        table.add_column("Payer")
        table.add_column("Status")
        table.add_column("Denial")
        for claim in response.json():
            table.add_row(
                claim["claimId"],
                claim.get("patient", {}).get("name", ""),
                claim.get("payer", {}).get("name", ""),
                claim["status"],
                claim.get("denialCode", ""),
            )
        self.console.print(table)

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /claim <id> - Set the claim you are working on (e.g. /claim CLM-1001)
• /clear - Clear the conversation and start over
• /quit or /exit - Exit the chat

[bold]Example Conversation:[/bold]
1. "Why was CLM-1001 denied?"
2. "What should we do about it?"
3. "Draft an appeal letter"

[bold]Tips:[/bold]
• Lookups run on their own; actions, letters and status changes wait for you
• Answer "later" to leave a card undecided
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
