import pytest

from assistant_hub.exceptions import NotFoundError, RemoteApiError, ValidationError
from assistant_hub.services.orchestrator import RunOrchestrator
from assistant_hub.services.session import SessionManager, find_reply
from assistant_hub.services.usage import UsageEstimator, UsageTracker
from tests.conftest import seed_assistant, seed_user
from tests.fakes import FakeOpenAIService, FakeTokenCounter, make_citation, make_message


def build_session(storage, dispatcher, fake):
    orchestrator = RunOrchestrator(fake, dispatcher, poll_interval=0, timeout=5)
    tracker = UsageTracker(storage, UsageEstimator({"openai": FakeTokenCounter()}))
    return SessionManager(storage, fake, orchestrator, tracker)


@pytest.mark.asyncio
async def test_new_conversation_creates_thread_record(storage, dispatcher):
    fake = FakeOpenAIService(replies=["Paris."])
    session = build_session(storage, dispatcher, fake)
    user_id = seed_user(storage)
    assistant_id = seed_assistant(storage, fake)
    question = "What is the capital of France? Please answer in one word only, thanks."

    result = await session.send_message(assistant_id, user_id, question)

    assert result.response == "Paris."
    thread = storage.get("threads", result.thread_id)
    assert thread["title"] == question[:50]
    assert thread["user_id"] == user_id
    assert storage.find("usage", user_id=user_id)[0]["thread_id"] == result.thread_id
    assert storage.get("users", user_id)["currentusertokens"] > 0


@pytest.mark.asyncio
async def test_follow_up_reuses_thread(storage, dispatcher):
    fake = FakeOpenAIService(replies=["first", "second"])
    session = build_session(storage, dispatcher, fake)
    user_id = seed_user(storage)
    assistant_id = seed_assistant(storage, fake)

    first = await session.send_message(assistant_id, user_id, "one")
    second = await session.send_message(assistant_id, user_id, "two", thread_id=first.thread_id)

    assert second.thread_id == first.thread_id
    assert second.response == "second"
    assert len(storage.find("threads")) == 1
    assert [m.role for m in fake.threads[first.thread_id]] == ["user", "assistant", "user", "assistant"]


@pytest.mark.asyncio
async def test_foreign_thread_is_rejected(storage, dispatcher):
    fake = FakeOpenAIService()
    session = build_session(storage, dispatcher, fake)
    owner = seed_user(storage, "owner@example.com")
    intruder = seed_user(storage, "intruder@example.com")
    assistant_id = seed_assistant(storage, fake)
    result = await session.send_message(assistant_id, owner, "mine")

    with pytest.raises(NotFoundError):
        await session.send_message(assistant_id, intruder, "let me in", thread_id=result.thread_id)


@pytest.mark.asyncio
@pytest.mark.parametrize("prompt", ["", "   ", "x" * 32701])
async def test_invalid_prompts_fail_before_remote_calls(storage, dispatcher, prompt):
    fake = FakeOpenAIService()
    session = build_session(storage, dispatcher, fake)
    assistant_id = seed_assistant(storage, fake)

    with pytest.raises(ValidationError):
        await session.send_message(assistant_id, seed_user(storage), prompt)
    assert fake.runs == {}


@pytest.mark.asyncio
async def test_unknown_assistant(storage, dispatcher):
    session = build_session(storage, dispatcher, FakeOpenAIService())
    with pytest.raises(NotFoundError):
        await session.send_message("asst_missing", seed_user(storage), "hi")


@pytest.mark.asyncio
async def test_restricted_model_strips_incompatible_tools(storage, dispatcher):
    fake = FakeOpenAIService()
    session = build_session(storage, dispatcher, fake)
    assistant_id = seed_assistant(storage, fake, model="o3-mini", tools=[
        {"type": "code_interpreter"},
        {"type": "file_search"},
        {"type": "function", "function": {"name": "calculate"}},
    ])

    await session.send_message(assistant_id, seed_user(storage), "hi")

    assert fake.updated_tools == [{"type": "function", "function": {"name": "calculate"}}]


@pytest.mark.asyncio
async def test_compatible_assistant_is_left_alone(storage, dispatcher):
    fake = FakeOpenAIService()
    session = build_session(storage, dispatcher, fake)
    assistant_id = seed_assistant(storage, fake, model="gpt-4o", tools=[{"type": "code_interpreter"}])

    await session.send_message(assistant_id, seed_user(storage), "hi")

    assert fake.updated_tools == []


@pytest.mark.asyncio
async def test_tool_update_failure_aborts(storage, dispatcher):
    fake = FakeOpenAIService()
    fake.fail_on.add("update_assistant_tools")
    session = build_session(storage, dispatcher, fake)
    assistant_id = seed_assistant(storage, fake, model="o3-mini", tools=[{"type": "file_search"}])

    with pytest.raises(RemoteApiError):
        await session.send_message(assistant_id, seed_user(storage), "hi")
    assert fake.runs == {}


@pytest.mark.asyncio
async def test_edit_prompt_replaces_message_and_reply(storage, dispatcher):
    fake = FakeOpenAIService(replies=["old answer", "new answer"])
    session = build_session(storage, dispatcher, fake)
    user_id = seed_user(storage)
    assistant_id = seed_assistant(storage, fake)
    first = await session.send_message(assistant_id, user_id, "old question")
    original = fake.threads[first.thread_id][0]

    edited = await session.edit_prompt(assistant_id, user_id, first.thread_id, original.id, "new question")

    assert edited.response == "new answer"
    assert fake.deleted_messages == [original.id, first.msg_id]
    texts = [(m.role, m.content[0].text.value) for m in fake.threads[first.thread_id]]
    assert texts == [("user", "new question"), ("assistant", "new answer")]


@pytest.mark.asyncio
async def test_edit_unknown_message(storage, dispatcher):
    fake = FakeOpenAIService()
    session = build_session(storage, dispatcher, fake)
    user_id = seed_user(storage)
    assistant_id = seed_assistant(storage, fake)
    first = await session.send_message(assistant_id, user_id, "q")

    with pytest.raises(NotFoundError):
        await session.edit_prompt(assistant_id, user_id, first.thread_id, "msg_missing", "new")


def test_find_reply_stops_at_next_user_message():
    messages = [
        make_message("u1", "user", "a", 1),
        make_message("u2", "user", "b", 2),
        make_message("a2", "assistant", "c", 3),
    ]

    assert find_reply(messages, "u1") is None
    assert find_reply(messages, "u2").id == "a2"


@pytest.mark.asyncio
async def test_history_for_unknown_thread_is_empty(storage, dispatcher):
    fake = FakeOpenAIService()
    session = build_session(storage, dispatcher, fake)

    history = await session.get_history("asst_1", "user-1", "thread_unknown")

    assert history == {"messages": [], "metadata": {"first_id": None, "last_id": None, "has_more": False}}


@pytest.mark.asyncio
async def test_history_requires_thread_id(storage, dispatcher):
    session = build_session(storage, dispatcher, FakeOpenAIService())
    with pytest.raises(ValidationError):
        await session.get_history("asst_1", "user-1", None)


@pytest.mark.asyncio
async def test_history_resolves_citations(storage, dispatcher):
    fake = FakeOpenAIService(files={"file-1": "handbook.pdf"})
    session = build_session(storage, dispatcher, fake)
    user_id = seed_user(storage)
    assistant_id = seed_assistant(storage, fake)
    first = await session.send_message(assistant_id, user_id, "policy?")
    fake.add_thread_message(first.thread_id, "user", "and holidays?")
    fake.add_thread_message(first.thread_id, "assistant", "25 days【1:0†source】", run_id="run_x",
                            annotations=[make_citation("【1:0†source】", "file-1")])

    history = await session.get_history(assistant_id, user_id, first.thread_id)

    assert history["messages"][0]["bot_message"] == "25 days [Source: handbook.pdf]"
    assert history["messages"][1]["chat_prompt"] == "policy?"
    assert history["metadata"]["has_more"] is False


@pytest.mark.asyncio
async def test_usage_failure_does_not_fail_the_chat(storage, dispatcher):
    fake = FakeOpenAIService(replies=["fine"])
    orchestrator = RunOrchestrator(fake, dispatcher, poll_interval=0, timeout=5)
    tracker = UsageTracker(storage, UsageEstimator({}))
    session = SessionManager(storage, fake, orchestrator, tracker)
    assistant_id = seed_assistant(storage, fake)

    result = await session.send_message(assistant_id, seed_user(storage), "hi")

    assert result.response == "fine"
    assert storage.find("usage") == []
