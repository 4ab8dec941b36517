import json
import types
from datetime import date

import pytest
from slack_sdk.errors import SlackApiError

import slack_bug_report.handler as h
import slack_bug_report.llm as llm
from slack_bug_report.config import load_settings
from slack_bug_report.slack import SlackClient


class FakeWeb:
    def __init__(self, history_error=None, failing_users=()):
        self.history_error = history_error
        self.failing_users = set(failing_users)
        self.calls = []
        self.history_kwargs = []

    def conversations_history(self, **kw):
        self.calls.append("history")
        self.history_kwargs.append(kw)
        if self.history_error:
            raise self.history_error
        return {
            "ok": True,
            "messages": [
                {"ts": "200", "text": "checkout 500", "user": "U2"},
                {"ts": "100", "thread_ts": "100", "reply_count": 2, "text": "login broken", "user": "U1"},
            ],
            "response_metadata": {"next_cursor": ""},
        }

    def conversations_replies(self, **kw):
        self.calls.append("replies")
        return {
            "ok": True,
            "messages": [
                {"ts": "100", "thread_ts": "100", "text": "login broken", "user": "U1"},
                {"ts": "110", "thread_ts": "100", "text": "looking", "user": "U3"},
                {"ts": "130", "thread_ts": "100", "text": "fixed", "user": "U3"},
            ],
        }

    def users_info(self, user):
        self.calls.append("users")
        if user in self.failing_users:
            raise SlackApiError("boom", {"ok": False, "error": "user_not_found"})
        names = {"U1": "Ayu", "U2": "Budi", "U3": "Citra"}
        return {"ok": True, "user": {"real_name": names[user], "profile": {"display_name": user}}}


class FakeOpenAIModule:
    def __init__(self):
        self.requests = []

    def OpenAI(self, **_kw):
        module = self

        class Completions:
            def create(self, **kw):
                module.requests.append(kw)
                msg = types.SimpleNamespace(content="# Laporan Bug\nOK")
                return types.SimpleNamespace(choices=[types.SimpleNamespace(message=msg)])

        return types.SimpleNamespace(chat=types.SimpleNamespace(completions=Completions()))


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-test")
    monkeypatch.setenv("SLACK_CHANNEL_ID", "C123")
    monkeypatch.setenv("SLACK_START_DATE", "1970-01-01")
    monkeypatch.setenv("SLACK_END_DATE", "1970-01-01")
    monkeypatch.setenv("LLM_API_KEY", "sk-test")
    monkeypatch.setenv("OUTPUT_DIR", str(tmp_path))
    monkeypatch.setenv("SLACK_RETRY_DELAY_SECONDS", "0")
    monkeypatch.setenv("LLM_RETRY_DELAY_SECONDS", "0")
    for name in ("LLM_PROVIDER", "LLM_MODEL", "ARTIFACT_BUCKET", "REPORT_TIMEZONE", "MAX_WORKERS"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def slack_for(web):
    return SlackClient("xoxb-test", "C123", web_client=web)


def test_run_end_to_end(env, tmp_path):
    fake_llm = FakeOpenAIModule()
    env.setitem(llm.__dict__, "openai", fake_llm)

    res = h.run(load_settings(), slack=slack_for(FakeWeb()), today=date(2024, 6, 1))

    assert res["result"] == "ok"
    assert res["messages"] == 4

    transcript = (tmp_path / "raw-messages" / "raw-slack-messages-2024-06-01.txt").read_text(
        encoding="utf-8"
    )
    assert transcript == (
        "[1970-01-01 00:01:40] Ayu: login broken\n"
        "    [THREAD INFO] Started: 1970-01-01 00:01:40 | Resolved: 1970-01-01 00:02:10"
        " | Resolution Time: 1 minutes | Replies: 2\n\n"
        "    ↳ [1970-01-01 00:01:50] Citra: looking\n\n"
        "    ↳ [1970-01-01 00:02:10] Citra: fixed\n\n"
        "---\n\n"
        "[1970-01-01 00:03:20] Budi: checkout 500\n\n"
    )

    merged = json.loads(
        (tmp_path / "raw-messages" / "slack-messages-2024-06-01.json").read_text(encoding="utf-8")
    )
    assert sorted(m["ts"] for m in merged) == ["100", "110", "130", "200"]
    root = next(m for m in merged if m["ts"] == "100")
    assert root["has_resolution"] is True
    assert root["resolution_time_minutes"] == 1
    assert root["author_info"]["real_name"] == "Ayu"

    batches = json.loads(
        (tmp_path / "conversation-batches" / "conversation-batches-2024-06-01.json").read_text(
            encoding="utf-8"
        )
    )
    assert batches[0]["role"] == "system"
    assert batches[1]["content"] == "Bagian 1 dari 1:\n\n" + transcript

    report = (tmp_path / "final-reports" / "final_report-2024-06-01.md").read_text(encoding="utf-8")
    assert report == "# Laporan Bug\nOK"
    assert fake_llm.requests[0]["temperature"] == 0


def test_history_window_excludes_end_bound(env):
    web = FakeWeb()
    res = h.run(load_settings(), analyze=False, slack=slack_for(web), today=date(2024, 6, 1))
    assert res["result"] == "ok"
    kw = web.history_kwargs[0]
    assert kw["oldest"] == "0.000000"
    assert kw["latest"] == "86399.999999"
    assert kw["inclusive"] is True


def test_failed_user_lookup_gets_placeholder(env, tmp_path):
    env.setitem(llm.__dict__, "openai", FakeOpenAIModule())
    res = h.run(
        load_settings(), analyze=False, slack=slack_for(FakeWeb(failing_users={"U1"})), today=date(2024, 6, 1)
    )
    assert res["result"] == "ok"
    merged = json.loads(
        (tmp_path / "raw-messages" / "slack-messages-2024-06-01.json").read_text(encoding="utf-8")
    )
    by_ts = {m["ts"]: m for m in merged}
    assert by_ts["100"]["author_info"]["real_name"] == "Unknown"
    assert by_ts["100"]["author_info"]["is_bot"] is False
    assert by_ts["200"]["author_info"]["real_name"] == "Budi"
    assert by_ts["110"]["author_info"]["real_name"] == "Citra"


def test_no_analysis_skips_llm(env, tmp_path):
    fake_llm = FakeOpenAIModule()
    env.setitem(llm.__dict__, "openai", fake_llm)
    res = h.run(load_settings(), analyze=False, slack=slack_for(FakeWeb()), today=date(2024, 6, 1))
    assert res["result"] == "ok"
    assert len(res["artifacts"]) == 2
    assert fake_llm.requests == []
    assert not (tmp_path / "final-reports").exists()


def test_history_failure_aborts_run(env, tmp_path):
    web = FakeWeb(history_error=SlackApiError("nope", {"ok": False, "error": "channel_not_found"}))
    res = h.run(load_settings(), slack=slack_for(web), today=date(2024, 6, 1))
    assert res["result"] == "error"
    # permanent Slack error: no retries
    assert web.calls == ["history"]
    assert not (tmp_path / "raw-messages").exists()


def test_transient_history_failure_is_retried(env):
    env.setenv("SLACK_MAX_RETRIES", "1")
    web = FakeWeb(history_error=ConnectionError("reset"))
    res = h.run(load_settings(), analyze=False, slack=slack_for(web), today=date(2024, 6, 1))
    assert res["result"] == "error"
    assert web.calls.count("history") == 2


def test_missing_config_is_reported(env):
    env.delenv("SLACK_BOT_TOKEN")
    res = h.run(load_settings(), slack=slack_for(FakeWeb()))
    assert res == {"result": "error", "error": "missing configuration: SLACK_BOT_TOKEN"}


def test_empty_channel(env):
    class EmptyWeb(FakeWeb):
        def conversations_history(self, **kw):
            return {"ok": True, "messages": []}

    res = h.run(load_settings(), slack=slack_for(EmptyWeb()))
    assert res == {"result": "no_messages", "messages": 0}


def test_main_no_analysis_flag(env, monkeypatch, tmp_path):
    web = FakeWeb()
    monkeypatch.setitem(h.__dict__, "SlackClient", lambda *_a, **_k: slack_for(web))

    assert h.main(["-na", "--start-date", "1970-01-01", "--end-date", "1970-01-01"]) == 0
    assert "replies" in web.calls
    assert list((tmp_path / "raw-messages").iterdir())
    assert not (tmp_path / "final-reports").exists()


def test_main_exit_code_on_error(env, monkeypatch):
    web = FakeWeb(history_error=SlackApiError("nope", {"ok": False, "error": "invalid_auth"}))
    monkeypatch.setitem(h.__dict__, "SlackClient", lambda *_a, **_k: slack_for(web))
    assert h.main(["--no-analysis"]) == 1


def test_lambda_handler_response(env, monkeypatch):
    fake_llm = FakeOpenAIModule()
    monkeypatch.setitem(llm.__dict__, "openai", fake_llm)
    monkeypatch.setitem(h.__dict__, "SlackClient", lambda *_a, **_k: slack_for(FakeWeb()))

    res = h.lambda_handler({"analyze": True}, types.SimpleNamespace(aws_request_id="req-1"))

    assert res["statusCode"] == 200
    body = json.loads(res["body"])
    assert body["result"] == "ok"
    assert body["messages"] == 4
    assert len(fake_llm.requests) == 1


@pytest.mark.parametrize("flag", ["false", "False", "0", "no", False])
def test_lambda_handler_analyze_flag_off(env, monkeypatch, flag):
    fake_llm = FakeOpenAIModule()
    monkeypatch.setitem(llm.__dict__, "openai", fake_llm)
    monkeypatch.setitem(h.__dict__, "SlackClient", lambda *_a, **_k: slack_for(FakeWeb()))

    res = h.lambda_handler({"analyze": flag}, types.SimpleNamespace(aws_request_id="req-2"))

    assert res["statusCode"] == 200
    assert fake_llm.requests == []


def test_lambda_handler_start_date_only(env, monkeypatch):
    env.delenv("SLACK_START_DATE")
    env.delenv("SLACK_END_DATE")
    web = FakeWeb()
    monkeypatch.setitem(h.__dict__, "SlackClient", lambda *_a, **_k: slack_for(web))

    res = h.lambda_handler(
        {"analyze": "false", "start_date": "2024-05-10"}, types.SimpleNamespace(aws_request_id="r")
    )

    assert res["statusCode"] == 200
    assert web.history_kwargs[0]["oldest"] == "1715299200.000000"
