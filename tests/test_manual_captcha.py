"""
Tests for manual captcha prompts.
"""

import asyncio
import threading
from unittest.mock import patch

import pytest

from ipo_checker.core.errors import SessionDiscardedError
from ipo_checker.core.manual_captcha import ManualCaptchaBroker, ManualCaptchaRequest
from ipo_checker.core.models import CaptchaImage

from main import ConsoleCaptchaPrompt, read_line

BOID = "1300000000000001"
IMAGE = CaptchaImage(data=b"captcha", mime_type="image/png")


class TestManualCaptchaRequest:

    @pytest.mark.asyncio
    async def test_submit_five_digits(self):
        request = ManualCaptchaRequest(BOID, IMAGE, attempt=1)

        request.submit(" 48213 ")

        assert request.done
        assert await request.wait() == "48213"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "4821", "482130", "48a13"])
    async def test_submit_rejects_anything_but_five_digits(self, text):
        request = ManualCaptchaRequest(BOID, IMAGE, attempt=1)

        with pytest.raises(ValueError):
            request.submit(text)
        assert not request.done

    @pytest.mark.asyncio
    async def test_typing_auto_submits_on_fifth_digit(self):
        request = ManualCaptchaRequest(BOID, IMAGE, attempt=3)

        assert request.enter("482") is False
        request.backspace()
        assert request.typed == "48"
        assert request.enter("21") is False
        assert request.enter("3") is True

        assert await request.wait() == "48213"

    @pytest.mark.asyncio
    async def test_typing_rejects_letters(self):
        request = ManualCaptchaRequest(BOID, IMAGE, attempt=1)

        with pytest.raises(ValueError):
            request.enter("4x")
        assert request.typed == "4"

    @pytest.mark.asyncio
    async def test_skip_resolves_none(self):
        request = ManualCaptchaRequest(BOID, IMAGE, attempt=1)

        request.skip()
        request.submit("48213")

        assert await request.wait() is None

    @pytest.mark.asyncio
    async def test_discard_raises(self):
        request = ManualCaptchaRequest(BOID, IMAGE, attempt=1)

        request.discard()

        with pytest.raises(SessionDiscardedError):
            await request.wait()


class TestManualCaptchaBroker:

    @pytest.mark.asyncio
    async def test_without_subscriber_skips(self, manual_broker):
        assert await manual_broker.request(BOID, IMAGE, attempt=1) is None
        assert manual_broker.pending == []

    @pytest.mark.asyncio
    async def test_subscriber_receives_request(self, manual_broker):
        seen = []

        def answer(request):
            seen.append(request)
            request.submit("12345")

        manual_broker.subscribe(answer)
        text = await manual_broker.request(BOID, IMAGE, attempt=2, label="Mom")

        assert text == "12345"
        assert seen[0].identifier == BOID
        assert seen[0].label == "Mom"
        assert seen[0].attempt == 2
        assert seen[0].image is IMAGE
        assert manual_broker.pending == []

    @pytest.mark.asyncio
    async def test_waits_without_timeout_until_answered(self, manual_broker):
        manual_broker.subscribe(lambda request: None)

        task = asyncio.create_task(manual_broker.request(BOID, IMAGE, attempt=1))
        await asyncio.sleep(0.05)
        assert not task.done()

        manual_broker.pending[0].enter("55555")
        assert await task == "55555"

    @pytest.mark.asyncio
    async def test_unsubscribe(self, manual_broker):
        unsubscribe = manual_broker.subscribe(lambda request: request.submit("11111"))
        assert manual_broker.has_subscribers

        unsubscribe()

        assert not manual_broker.has_subscribers
        assert await manual_broker.request(BOID, IMAGE, attempt=1) is None

    @pytest.mark.asyncio
    async def test_cancel_all_discards_pending(self, manual_broker):
        manual_broker.subscribe(lambda request: None)
        task = asyncio.create_task(manual_broker.request(BOID, IMAGE, attempt=1))
        await asyncio.sleep(0)

        manual_broker.cancel_all()

        with pytest.raises(SessionDiscardedError):
            await task
        assert manual_broker.pending == []


def _scripted_reader(answers, request=None, discard_before=None):
    prompts = []

    async def reader(prompt):
        prompts.append(prompt)
        if discard_before is not None and len(prompts) == discard_before:
            request.discard()
        return answers.pop(0)

    reader.prompts = prompts
    return reader


class TestConsoleCaptchaPrompt:

    @pytest.mark.asyncio
    async def test_read_line_uses_daemon_thread(self):
        calls = []

        def fake_input(prompt):
            calls.append((prompt, threading.current_thread().daemon))
            return " 48213 \n"

        with patch("builtins.input", fake_input):
            line = await asyncio.wait_for(read_line("Captcha: "), timeout=5)

        assert line == "48213"
        assert calls == [("Captcha: ", True)]

    @pytest.mark.asyncio
    async def test_read_line_treats_eof_as_blank(self):
        with patch("builtins.input", side_effect=EOFError):
            line = await asyncio.wait_for(read_line("Captcha: "), timeout=5)

        assert line == ""

    @pytest.mark.asyncio
    async def test_reprompts_until_five_digits(self, tmp_path, capsys):
        request = ManualCaptchaRequest(BOID, IMAGE, attempt=2, label="Mom")
        reader = _scripted_reader(["12", "48213"])

        ConsoleCaptchaPrompt(str(tmp_path), reader=reader)(request)

        assert await asyncio.wait_for(request.wait(), timeout=5) == "48213"
        assert len(reader.prompts) == 2
        assert (tmp_path / f"captcha_{BOID}_2.png").read_bytes() == b"captcha"
        output = capsys.readouterr().out
        assert "Mom" in output
        assert "press Enter" in output

    @pytest.mark.asyncio
    async def test_blank_line_skips(self, tmp_path):
        request = ManualCaptchaRequest(BOID, IMAGE, attempt=1)

        ConsoleCaptchaPrompt(str(tmp_path), reader=_scripted_reader([""]))(request)

        assert await asyncio.wait_for(request.wait(), timeout=5) is None

    @pytest.mark.asyncio
    async def test_answer_after_discard_is_dropped(self, tmp_path):
        request = ManualCaptchaRequest(BOID, IMAGE, attempt=1)
        reader = _scripted_reader(["48213"], request=request, discard_before=1)
        prompt = ConsoleCaptchaPrompt(str(tmp_path), reader=reader)

        prompt(request)
        with pytest.raises(SessionDiscardedError):
            await asyncio.wait_for(request.wait(), timeout=5)
        await asyncio.gather(*prompt._tasks)

        assert reader.prompts == ["   Captcha: "]
