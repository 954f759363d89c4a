import json
import unittest
from datetime import datetime, timedelta

from tools.claude_client import LLMResponse
from tools.series_models import VideoRecord
from tools.series_semantic_clusterer import (
    FEATURE_TAG,
    MAX_OUTPUT_TOKENS,
    build_semantic_prompt,
    clusters_from_reply,
    detect_series_by_semantic,
    parse_llm_json,
)


def make_videos(count):
    return [
        VideoRecord(
            external_id=f"vid{index:03d}",
            title=f"Video {index}",
            published_at=datetime(2024, 1, 1) + timedelta(days=index),
            view_count=1000 * (index + 1),
        )
        for index in range(count)
    ]


class RecordingLLM:
    def __init__(self, text="", error=None):
        self.text = text
        self.error = error
        self.calls = []

    def __call__(self, prompt, system_prompt, feature_tag, max_output_tokens):
        self.calls.append((prompt, system_prompt, feature_tag, max_output_tokens))
        if self.error is not None:
            raise self.error
        return LLMResponse(
            text=self.text,
            usage={"input_tokens": 1200, "output_tokens": 300},
            cost=0.0081,
        )


class ParseLlmJsonTests(unittest.TestCase):
    def test_plain_and_fenced_json(self):
        self.assertEqual(parse_llm_json('{"series": []}'), {"series": []})
        self.assertEqual(parse_llm_json('```json\n{"series": [1]}\n```'), {"series": [1]})
        self.assertEqual(parse_llm_json("```\n[1, 2]\n```"), [1, 2])

    def test_fenced_block_inside_prose(self):
        raw = 'Here you go:\n```json\n{"a": 1}\n```\nLet me know if you need more.'
        self.assertEqual(parse_llm_json(raw), {"a": 1})

    def test_balanced_span_inside_prose(self):
        raw = 'Sure! {"series": [{"name": "X", "videoIndices": [0, 1, 2]}]} Hope that helps.'
        self.assertEqual(parse_llm_json(raw)["series"][0]["name"], "X")

    def test_fallback_and_error(self):
        self.assertEqual(parse_llm_json("no json here", {"series": []}), {"series": []})
        self.assertEqual(parse_llm_json(None, {"series": []}), {"series": []})
        with self.assertRaises(ValueError):
            parse_llm_json("no json here")


class ClusterReplyTests(unittest.TestCase):
    def test_invalid_indices_are_dropped(self):
        batch = make_videos(6)
        parsed = {
            "series": [
                {"name": "Camera Tests", "videoIndices": [0, 1, 2, 99, -1, "3"], "confidence": "high"},
                {"name": "Too Small", "videoIndices": [3, 3, 4]},
                {"name": "", "videoIndices": [3, 4, 5]},
                {"name": "Odd Confidence", "videoIndices": [3, 4, 5.0], "confidence": "certain"},
            ]
        }
        clusters = clusters_from_reply(parsed, batch)
        self.assertEqual([c.name for c in clusters], ["Camera Tests", "Odd Confidence"])
        self.assertEqual(clusters[0].video_ids, ("vid000", "vid001", "vid002"))
        self.assertEqual(clusters[0].confidence, "high")
        self.assertEqual(clusters[0].detection_method, "semantic")
        self.assertEqual(clusters[1].confidence, "medium")

    def test_bare_list_reply(self):
        batch = make_videos(5)
        clusters = clusters_from_reply([{"name": "Group", "videoIndices": [0, 1, 2]}], batch)
        self.assertEqual(len(clusters), 1)

    def test_prompt_lists_first_hundred_videos(self):
        prompt = build_semantic_prompt(make_videos(100), ["Gear Review"])
        self.assertIn("Already-detected series (via pattern matching): Gear Review", prompt)
        self.assertIn('0. "Video 0" (1,000 views)', prompt)
        self.assertIn('99. "Video 99" (100,000 views)', prompt)


class DetectSeriesBySemanticTests(unittest.TestCase):
    def test_fewer_than_five_videos_skips_llm(self):
        llm = RecordingLLM(text='{"series": []}')
        result = detect_series_by_semantic(make_videos(4), [], llm)
        self.assertTrue(result.ok)
        self.assertEqual(result.value, [])
        self.assertEqual(llm.calls, [])

    def test_successful_reply(self):
        reply = json.dumps({"series": [{"name": "Camera Tests", "videoIndices": [0, 2, 4], "confidence": "high"}]})
        llm = RecordingLLM(text=f"```json\n{reply}\n```")
        result = detect_series_by_semantic(make_videos(120), ["Gear Review"], llm)

        self.assertTrue(result.ok)
        self.assertEqual(result.value[0].video_ids, ("vid000", "vid002", "vid004"))
        self.assertEqual(result.tokens, 1500)
        self.assertAlmostEqual(result.cost, 0.0081)

        prompt, system_prompt, feature_tag, max_tokens = llm.calls[0]
        self.assertIn("Here are 100 video titles", prompt)
        self.assertNotIn('100. "Video 100"', prompt)
        self.assertIn("Return ONLY valid JSON", system_prompt)
        self.assertEqual(feature_tag, FEATURE_TAG)
        self.assertEqual(max_tokens, MAX_OUTPUT_TOKENS)

    def test_malformed_reply_is_empty_success(self):
        llm = RecordingLLM(text="I could not find any series, sorry.")
        result = detect_series_by_semantic(make_videos(8), [], llm)
        self.assertTrue(result.ok)
        self.assertEqual(result.value, [])
        self.assertEqual(result.tokens, 1500)

    def test_llm_error_becomes_failure(self):
        llm = RecordingLLM(error=RuntimeError("overloaded"))
        result = detect_series_by_semantic(make_videos(8), [], llm)
        self.assertFalse(result.ok)
        self.assertEqual(result.reason, "overloaded")
        self.assertIsNone(result.value)


if __name__ == "__main__":
    unittest.main()
