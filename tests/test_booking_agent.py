from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.runnables import RunnableLambda
from langgraph.graph import END

from booking_agent import SYSTEM_PROMPT_TEXT, build_booking_agent, router
from booking_tools import build_booking_tools
from conftest import EXPERIENCE_ID


class ScriptedLLM:
    """Chat model stand-in that replays canned replies and records what it saw."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.seen = []
        self.bound = None

    def bind_tools(self, tools):
        self.bound = [t.name for t in tools]
        return RunnableLambda(self._reply)

    def _reply(self, messages):
        self.seen.append(list(messages))
        return self.replies.pop(0)


def test_router():
    assert router({"messages": [AIMessage(content="hi")]}) == END
    call = AIMessage(content="", tool_calls=[{"name": "create_booking", "args": {}, "id": "c1"}])
    assert router({"messages": [call]}) == "tools"


def test_agent_runs_tools_until_model_answers(supplier, settings):
    llm = ScriptedLLM([
        AIMessage(content="", tool_calls=[{
            "name": "check_availability",
            "args": {"experience_id": EXPERIENCE_ID, "date_from": "2026-06-01", "date_to": "2026-06-30"},
            "id": "call-1",
        }]),
        AIMessage(content="Two dates are available."),
    ])
    agent = build_booking_agent(llm, build_booking_tools(supplier, settings))

    result = agent.invoke({"messages": [HumanMessage(content="When can I kayak in June?")]})

    assert "check_availability" in llm.bound
    assert isinstance(result["messages"][-1], AIMessage)
    assert result["messages"][-1].content == "Two dates are available."
    tool_messages = [m for m in result["messages"] if isinstance(m, ToolMessage)]
    assert len(tool_messages) == 1
    assert "slot-kayak-0601" in str(tool_messages[0].content)

    first_prompt = llm.seen[0]
    assert isinstance(first_prompt[0], SystemMessage)
    assert first_prompt[0].content == SYSTEM_PROMPT_TEXT
    assert "get_availability_list" in supplier.calls
