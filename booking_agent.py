import operator
from typing import Annotated, List, Literal, Sequence, TypedDict

from langchain_core.messages import AnyMessage, HumanMessage, SystemMessage
from langchain_core.tools import BaseTool
from langgraph.graph import END, StateGraph
from langgraph.prebuilt import ToolNode

SYSTEM_PROMPT_TEXT = """
You are a booking assistant that books experiences for a customer through tools.
Follow these rules exactly:

1) Protocol:
   - Every tool result has a structuredContent.nextActions list. Call one of those tools next
     unless the customer asked for something else. An empty list means the flow is complete.
   - Never call add_to_booking until the slot reports isValid=true.
   - Never call commit_booking until canCommit=true. Commit is irreversible: confirm the
     experience, date, participants and total price with the customer first.

2) Errors:
   - If isError is true, read error.code and follow error.nextActions. Do not retry the same
     call blindly.
   - For MISSING_REQUIRED_QUESTIONS answer exactly the questions listed in error.missing.

3) Payment:
   - If get_payment_info returns a checkoutUrl, give it to the customer and wait for them to pay
     before committing. The link expires in 15 minutes.

4) Output hygiene:
   - Never invent slot, booking or question IDs; only use IDs returned by tools.
   - If a required customer detail (name, email, phone) is unknown, ask exactly one short question.
"""


class AgentState(TypedDict):
    messages: Annotated[List[AnyMessage], operator.add]


def router(state: AgentState) -> Literal["tools", "__end__"]:
    last_message = state["messages"][-1]
    if getattr(last_message, "tool_calls", None):
        return "tools"
    return END


def build_booking_agent(llm, tools: Sequence[BaseTool]):
    """
    Planner <-> tools loop. The planner is any chat model supporting bind_tools;
    the loop ends when the model answers without calling a tool.
    """
    llm_with_tools = llm.bind_tools(list(tools))

    def planner_node(state: AgentState):
        messages = state["messages"]
        if not messages or not isinstance(messages[0], SystemMessage):
            messages = [SystemMessage(content=SYSTEM_PROMPT_TEXT)] + list(messages)
        response = llm_with_tools.invoke(messages)
        return {"messages": [response]}

    workflow = StateGraph(AgentState)
    workflow.add_node("planner", planner_node)
    workflow.add_node("tools", ToolNode(list(tools)))
    workflow.set_entry_point("planner")
    workflow.add_conditional_edges("planner", router, {"tools": "tools", END: END})
    workflow.add_edge("tools", "planner")
    return workflow.compile()


if __name__ == "__main__":
    from langchain_google_genai import ChatGoogleGenerativeAI

    from booking_tools import build_booking_tools
    from config import Settings, configure_logging
    from example_run import seed_demo_supplier

    configure_logging()
    supplier = seed_demo_supplier()
    llm = ChatGoogleGenerativeAI(model="gemini-2.5-flash", temperature=0)
    app = build_booking_agent(llm, build_booking_tools(supplier, Settings.from_env()))

    user_request = """
    Book the Louvre guided tour (experience exp-louvre) on 2026-11-02 in English for 2 adults.
    Lead guest: Ada Lovelace, ada@example.com, +44 20 7946 0000.
    """
    print(f"User Request: {user_request}")

    result = app.invoke({"messages": [HumanMessage(content=user_request)]}, {"recursion_limit": 60})
    print(result["messages"][-1].content)
