"""Turn graph and the runner that streams a single conversational turn."""

import asyncio
import contextlib
import uuid
from collections.abc import AsyncIterator

from langgraph.errors import GraphRecursionError
from langgraph.graph import END, StateGraph

from claimdesk.clients.anthropic import ModelClient
from claimdesk.config import DEFAULT_MAX_TOOL_ROUNDS
from claimdesk.errors import ModelServiceError, TurnCancelledError
from claimdesk.graphs.edges import route_agent_output, route_tool_output
from claimdesk.graphs.nodes import agent_node, finish_node, tools_node
from claimdesk.graphs.prompts import SYSTEM_PROMPT
from claimdesk.graphs.state import TURN_CONTEXT_KEY, CancellationToken, TurnContext, TurnState
from claimdesk.models.conversation import Message, TextPart
from claimdesk.models.events import ErrorEvent, FinishEvent
from claimdesk.models.llm import LLMMessage, LLMUsage
from claimdesk.services.decisions import DecisionService
from claimdesk.services.history import hydrate, to_llm_messages, with_claim_context
from claimdesk.services.tool_states import ToolStateStore
from claimdesk.tools.registry import ToolsRegistry
from claimdesk.utils.logging import get_logger

logger = get_logger(__name__)

MAX_MESSAGE_CHARS = 8000
SERVICE_FAILURE_MESSAGE = "The AI service is unavailable right now. Please try again."

_TURN_DONE = object()


def create_turn_graph():
    """Create the graph for one turn.

    agent -> tools -> agent ... until the model stops calling tools, a gated
    proposal is waiting for a human, or the tool round budget is spent;
    every path ends in the finish node.

    Returns:
        Compiled LangGraph workflow
    """
    logger.info("Creating turn graph")

    workflow = StateGraph(TurnState)

    workflow.add_node("agent", agent_node)
    workflow.add_node("tools", tools_node)
    workflow.add_node("finish", finish_node)

    workflow.set_entry_point("agent")

    workflow.add_conditional_edges("agent", route_agent_output, {"tools": "tools", "finish": "finish"})
    workflow.add_conditional_edges("tools", route_tool_output, {"agent": "agent", "finish": "finish"})
    workflow.add_edge("finish", END)

    # History arrives with every request, so no checkpointer is needed
    compiled = workflow.compile()

    logger.info("Turn graph created successfully")
    return compiled


def prepare_history(
    messages: list[Message],
    tool_states: ToolStateStore,
    claim_id: str | None = None,
) -> list[LLMMessage]:
    """Hydrate a client history and convert it into model messages.

    Raises:
        ValueError: If the history cannot be sent to the model
    """
    history = with_claim_context(hydrate(messages, tool_states), claim_id)
    if history and history[-1].role == "user" and len(history[-1].plain_text()) > MAX_MESSAGE_CHARS:
        raise ValueError(f"Your message is too long. Please keep messages under {MAX_MESSAGE_CHARS} characters.")
    return to_llm_messages(history)


_turn_graph = None


def get_turn_graph():
    """Get or create the compiled turn graph."""
    global _turn_graph
    if _turn_graph is None:
        _turn_graph = create_turn_graph()
    return _turn_graph


class TurnRunner:
    """Streams turns of the claims conversation."""

    def __init__(
        self,
        model_client: ModelClient,
        registry: ToolsRegistry,
        decisions: DecisionService,
        tool_states: ToolStateStore,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self.model_client = model_client
        self.registry = registry
        self.decisions = decisions
        self.tool_states = tool_states
        self.max_tool_rounds = max_tool_rounds
        self.system_prompt = system_prompt
        self.graph = get_turn_graph()

    def stream(
        self,
        messages: list[Message],
        claim_id: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator:
        """Validate the history and return the event stream of the turn.

        Validation happens before the stream is created, so a bad history
        never reaches the model.

        Raises:
            ValueError: If the history cannot be sent to the model
        """
        llm_messages = prepare_history(messages, self.tool_states, claim_id)
        return self.stream_prepared(llm_messages, cancel_token)

    def stream_prepared(
        self,
        llm_messages: list[LLMMessage],
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator:
        """Stream a turn over a history already checked by prepare_history."""
        return self._stream(llm_messages, cancel_token or CancellationToken())

    def run_turn(
        self,
        history: list[Message],
        new_user_text: str,
        claim_id: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator:
        """Append a user message to the history and stream the turn."""
        message = Message(id=f"msg_{uuid.uuid4().hex}", role="user", parts=[TextPart(text=new_user_text)])
        return self.stream([*history, message], claim_id=claim_id, cancel_token=cancel_token)

    async def _stream(self, llm_messages: list[LLMMessage], cancel_token: CancellationToken) -> AsyncIterator:
        message_id = f"msg_{uuid.uuid4().hex}"
        context = TurnContext(
            model_client=self.model_client,
            registry=self.registry,
            decisions=self.decisions,
            system_prompt=self.system_prompt,
            tools=self.registry.anthropic_tools(),
            cancel_token=cancel_token,
            usage=LLMUsage(),
        )
        config = {
            "configurable": {TURN_CONTEXT_KEY: context},
            # agent + tools per round, one closing agent step and the finish node
            "recursion_limit": 2 * self.max_tool_rounds + 4,
        }
        initial_state = {
            "messages": llm_messages,
            "message_id": message_id,
            "max_tool_rounds": self.max_tool_rounds,
        }

        logger.info(f"Starting turn {message_id} with {len(llm_messages)} model messages")

        # Nodes queue events synchronously, so everything emitted before a
        # failure is delivered ahead of the sentinel
        graph_task = asyncio.create_task(self.graph.ainvoke(initial_state, config))
        graph_task.add_done_callback(lambda _: context.events.put_nowait(_TURN_DONE))

        try:
            while True:
                event = await context.events.get()
                if event is _TURN_DONE:
                    break
                yield event
            graph_task.result()

        except TurnCancelledError:
            logger.info(f"Turn {message_id} cancelled after {context.steps} steps")
            yield FinishEvent(finish_reason="cancelled", steps=context.steps, tool_rounds=context.tool_rounds)
            return

        except ModelServiceError as e:
            logger.error(f"Model service failure in turn {message_id}: {e}")
            yield ErrorEvent(error=SERVICE_FAILURE_MESSAGE)
            return

        except GraphRecursionError:
            logger.error(f"Turn {message_id} hit the graph recursion limit")
            yield FinishEvent(finish_reason="max-steps", steps=context.steps, tool_rounds=context.tool_rounds)
            return

        except Exception as e:
            logger.error(f"Turn {message_id} failed: {e}", exc_info=True)
            yield ErrorEvent(error=SERVICE_FAILURE_MESSAGE)
            return

        finally:
            if not graph_task.done():
                # The consumer went away mid-turn
                cancel_token.cancel()
                graph_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await graph_task

        logger.info(
            f"Turn {message_id} token usage - Input: {context.usage.input_tokens}, "
            f"Output: {context.usage.output_tokens}, Cache hits: {context.usage.cache_read_input_tokens}"
        )
