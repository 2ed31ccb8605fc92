import http.client
import io
import json
import unittest
import urllib.error
from unittest.mock import MagicMock, patch

from quiz_ai import providers
from quiz_ai.errors import EmptyContentError, NetworkOrProviderError
from quiz_ai.models import ExtractionRequest
from quiz_ai.providers import ProviderName


def _image_request():
    return ExtractionRequest.for_image(b"\x89PNG", "image/jpeg")


def _fake_response(payload):
    resp = MagicMock()
    resp.read.return_value = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    resp.__enter__.return_value = resp
    resp.__exit__.return_value = False
    return resp


def _http_error(code, body):
    return urllib.error.HTTPError(
        url="https://example.invalid",
        code=code,
        msg="error",
        hdrs=None,
        fp=io.BytesIO(body.encode("utf-8")),
    )


class TestBuildRequest(unittest.TestCase):
    def test_openai_image(self):
        req = providers.build_request("openai", _image_request(), "sk-test")
        self.assertEqual(req.url, "https://api.openai.com/v1/chat/completions")
        self.assertEqual(req.headers["Authorization"], "Bearer sk-test")
        content = req.body["messages"][0]["content"]
        self.assertEqual(content[0]["type"], "text")
        self.assertTrue(content[1]["image_url"]["url"].startswith("data:image/jpeg;base64,"))
        self.assertEqual(req.body["max_tokens"], 1000)

    def test_openai_transcript(self):
        req = providers.build_request(
            ProviderName.OPENAI, ExtractionRequest.for_transcript("what is two plus two"), "k"
        )
        prompt = req.body["messages"][0]["content"]
        self.assertIsInstance(prompt, str)
        self.assertTrue(prompt.endswith("Spoken question: what is two plus two"))
        self.assertEqual(req.body["temperature"], 0.7)

    def test_anthropic_image(self):
        req = providers.build_request("anthropic", _image_request(), "ak")
        self.assertEqual(req.headers["x-api-key"], "ak")
        self.assertEqual(req.headers["anthropic-version"], "2023-06-01")
        block = req.body["messages"][0]["content"][0]
        self.assertEqual(block["source"]["media_type"], "image/jpeg")
        self.assertEqual(block["source"]["data"], "iVBORw==")
        self.assertEqual(req.body["max_tokens"], 4000)

    def test_gemini_image_and_transcript(self):
        req = providers.build_request("gemini", _image_request(), "gk", model="gemini-test")
        self.assertTrue(req.url.endswith("/models/gemini-test:generateContent?key=gk"))
        parts = req.body["contents"][0]["parts"]
        self.assertEqual(parts[1]["inlineData"]["mimeType"], "image/jpeg")
        self.assertNotIn("Authorization", req.headers)

        req = providers.build_request("gemini", ExtractionRequest.for_transcript("x"), "gk")
        self.assertEqual(req.body["generationConfig"], {"responseMimeType": "application/json"})

    def test_model_from_environment(self):
        with patch.dict("os.environ", {"OPENAI_MODEL": "gpt-custom"}):
            req = providers.build_request("openai", _image_request(), "k")
        self.assertEqual(req.body["model"], "gpt-custom")

    def test_unknown_provider(self):
        with self.assertRaises(ValueError):
            providers.build_request("mistral", _image_request(), "k")


class TestParseResponse(unittest.TestCase):
    def test_reads_each_provider_shape(self):
        self.assertEqual(
            providers.parse_response("openai", {"choices": [{"message": {"content": "{}"}}]}), "{}"
        )
        self.assertEqual(
            providers.parse_response("anthropic", {"content": [{"type": "text", "text": "{}"}]}), "{}"
        )
        self.assertEqual(
            providers.parse_response("gemini", {"candidates": [{"content": {"parts": [{"text": "{}"}]}}]}),
            "{}",
        )

    def test_missing_content(self):
        for provider, data in [
            ("openai", {"choices": []}),
            ("anthropic", {"content": []}),
            ("gemini", {"candidates": [{"content": {"parts": []}}]}),
            ("openai", {"choices": [{"message": {"content": "   "}}]}),
        ]:
            with self.assertRaises(EmptyContentError, msg=provider):
                providers.parse_response(provider, data)


class TestSendRequest(unittest.TestCase):
    def setUp(self):
        self.req = providers.build_request("openai", _image_request(), "k")
        patcher = patch("quiz_ai.providers.time.sleep")
        self.mock_sleep = patcher.start()
        self.addCleanup(patcher.stop)

    @patch("quiz_ai.providers.urllib.request.urlopen")
    def test_success(self, mock_urlopen):
        mock_urlopen.return_value = _fake_response({"choices": []})
        self.assertEqual(providers.send_request(self.req, timeout_s=5), {"choices": []})
        _, kwargs = mock_urlopen.call_args
        self.assertEqual(kwargs["timeout"], 5)

    @patch("quiz_ai.providers.urllib.request.urlopen")
    def test_provider_error_message_is_surfaced(self, mock_urlopen):
        mock_urlopen.side_effect = _http_error(401, json.dumps({"error": {"message": "Incorrect API key provided"}}))
        with self.assertRaises(NetworkOrProviderError) as ctx:
            providers.send_request(self.req)
        self.assertEqual(str(ctx.exception), "Incorrect API key provided")
        self.assertEqual(mock_urlopen.call_count, 1)
        self.mock_sleep.assert_not_called()

    @patch("quiz_ai.providers.urllib.request.urlopen")
    def test_provider_error_without_message(self, mock_urlopen):
        mock_urlopen.side_effect = _http_error(500, "<html>oops</html>")
        with self.assertRaises(NetworkOrProviderError) as ctx:
            providers.send_request(self.req)
        self.assertEqual(str(ctx.exception), "Failed to process with OpenAI")

    @patch("quiz_ai.providers.urllib.request.urlopen")
    def test_network_failure(self, mock_urlopen):
        mock_urlopen.side_effect = urllib.error.URLError("connection refused")
        with self.assertRaises(NetworkOrProviderError) as ctx:
            providers.send_request(self.req)
        self.assertIn("Could not reach OpenAI", str(ctx.exception))

    @patch("quiz_ai.providers.urllib.request.urlopen")
    def test_timeout(self, mock_urlopen):
        mock_urlopen.side_effect = TimeoutError()
        with self.assertRaises(NetworkOrProviderError) as ctx:
            providers.send_request(self.req, timeout_s=2)
        self.assertIn("timed out after 2s", str(ctx.exception))

    @patch("quiz_ai.providers.urllib.request.urlopen")
    def test_rate_limit_is_retried(self, mock_urlopen):
        body = json.dumps({"error": {"message": "slow down", "details": [
            {"@type": "type.googleapis.com/google.rpc.RetryInfo", "retryDelay": "7s"}]}})
        mock_urlopen.side_effect = [_http_error(429, body), _fake_response({"choices": []})]
        self.assertEqual(providers.send_request(self.req, retries=1), {"choices": []})
        self.mock_sleep.assert_called_once_with(7.0)

    @patch("quiz_ai.providers.urllib.request.urlopen")
    def test_retries_are_bounded(self, mock_urlopen):
        mock_urlopen.side_effect = [_http_error(503, "{}") for _ in range(3)]
        with self.assertRaises(NetworkOrProviderError) as ctx:
            providers.send_request(self.req, retries=2)
        self.assertEqual(mock_urlopen.call_count, 3)
        self.assertEqual([c.args[0] for c in self.mock_sleep.call_args_list], [1.0, 2.0])
        self.assertEqual(str(ctx.exception), "Failed to process with OpenAI")

    @patch("quiz_ai.providers.urllib.request.urlopen")
    def test_no_retries(self, mock_urlopen):
        mock_urlopen.side_effect = urllib.error.URLError("connection refused")
        with self.assertRaises(NetworkOrProviderError):
            providers.send_request(self.req, retries=0)
        self.assertEqual(mock_urlopen.call_count, 1)

    @patch("quiz_ai.providers.urllib.request.urlopen")
    def test_dropped_connection_is_retried(self, mock_urlopen):
        mock_urlopen.side_effect = [
            http.client.RemoteDisconnected("Remote end closed connection without response"),
            _fake_response({"choices": []}),
        ]
        self.assertEqual(providers.send_request(self.req, retries=1), {"choices": []})
        self.assertEqual(mock_urlopen.call_count, 2)
        self.mock_sleep.assert_called_once_with(1.0)

    @patch("quiz_ai.providers.urllib.request.urlopen")
    def test_truncated_body(self, mock_urlopen):
        resp = _fake_response(b"")
        resp.read.side_effect = http.client.IncompleteRead(b"{")
        mock_urlopen.return_value = resp
        with self.assertRaises(NetworkOrProviderError) as ctx:
            providers.send_request(self.req, retries=0)
        self.assertIn("Connection to OpenAI failed", str(ctx.exception))

    @patch("quiz_ai.providers.urllib.request.urlopen")
    def test_connection_reset_after_retries(self, mock_urlopen):
        mock_urlopen.side_effect = ConnectionResetError("reset by peer")
        with self.assertRaises(NetworkOrProviderError):
            providers.send_request(self.req, retries=1)
        self.assertEqual(mock_urlopen.call_count, 2)

    @patch("quiz_ai.providers.urllib.request.urlopen")
    def test_body_that_is_not_utf8(self, mock_urlopen):
        mock_urlopen.return_value = _fake_response(b"\xff\xfe{}")
        with self.assertRaises(NetworkOrProviderError) as ctx:
            providers.send_request(self.req)
        self.assertIn("not UTF-8", str(ctx.exception))

    @patch("quiz_ai.providers.urllib.request.urlopen")
    def test_non_json_body(self, mock_urlopen):
        mock_urlopen.return_value = _fake_response(b"not json")
        with self.assertRaises(NetworkOrProviderError):
            providers.send_request(self.req)


if __name__ == "__main__":
    unittest.main()
