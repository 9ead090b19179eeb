from studio.chat import (
    GREETING,
    build_chat_prompt,
    conversation_context,
    escape_html,
    format_response,
    greeting_message,
    is_code_reply,
)
from studio.typing import ChatMessage


def msgs(*pairs):
    return [ChatMessage(text=text, sender=sender) for sender, text in pairs]


def test_greeting():
    message = greeting_message()
    assert message.sender == "assistant"
    assert message.text == GREETING


def test_context_keeps_last_five_messages():
    history = msgs(*[("user" if i % 2 == 0 else "assistant", f"m{i}") for i in range(8)])

    context = conversation_context(history)

    assert context.splitlines() == [
        "assistant: m3",
        "user: m4",
        "assistant: m5",
        "user: m6",
        "assistant: m7",
    ]


def test_prompt_includes_new_message_in_context():
    history = msgs(("assistant", GREETING))

    prompt = build_chat_prompt(history, "What is Python?")

    assert prompt == (
        f"assistant: {GREETING}\n"
        "user: What is Python?\n"
        "Human: What is Python?\n"
        "Assistant:"
    )


def test_zero_context_length():
    assert build_chat_prompt(msgs(("user", "a")), "b", context_length=0) == "\nHuman: b\nAssistant:"


def test_format_fenced_code_is_escaped():
    reply = "Try this:\n```\nif a < b && c > d: print('x')\n```"

    html = format_response(reply)

    assert '<pre><code class="language-javascript">' in html
    assert "if a &lt; b &amp;&amp; c &gt; d: print(&#039;x&#039;)" in html
    assert "```" not in html


def test_format_inline_code():
    assert format_response("use `pip install` here") == "use <code>pip install</code> here"


def test_escape_html_quotes():
    assert escape_html("\"'") == "&quot;&#039;"


def test_is_code_reply():
    assert is_code_reply("```x```")
    assert is_code_reply("<code>x</code>")
    assert not is_code_reply("plain text")
