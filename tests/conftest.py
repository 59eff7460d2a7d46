"""
Shared fixtures: settings, fake model client, in-memory chart store, sample answers.
"""

import io
import json

import pytest
from PIL import Image

from finova.core.config import Settings
from finova.vision.errors import ChartNotFoundError


FULL_TEXT_ANSWER = """SUMMARY
Current Status: Price is consolidating just below resistance at 187.50.
Recommendation: BUY
Confidence: 72
Support Price: $180.25
Resistance Price: 187.50
Stop Loss Price: 176.00
Take Profit Price: 195.40
Short Explanation: Higher lows since March and a bullish MACD cross.
A close above 187.50 would confirm the breakout.

DETAILED ANALYSIS
Trend Analysis: Short-term uptrend with higher highs and higher lows.
The 50-day SMA is rising.
Support and Resistance: Support at 180.25, resistance at 187.50.
Technical Indicators: RSI at 61, MACD above signal line, price near the upper Bollinger Band.
Patterns: Ascending triangle forming over the last three weeks.
Risk Assessment: Moderate risk; a break below 176.00 invalidates the setup.
Current Technical Position: Bullish bias while above the 20-day SMA.
Gap Analysis: There is a gap of 100.00 to 110.50 which has not been filled.
"""


def full_json_answer() -> dict:
    return {
        "summary": {
            "currentStatus": "Trading near all-time highs",
            "recommendation": "SELL",
            "confidence": 64,
            "shortExplanation": "Bearish divergence on RSI.",
            "priceTargets": {
                "supportPrice": 410.5,
                "resistancePrice": 432.0,
                "stopLossPrice": 436.25,
                "takeProfitPrice": 398.75,
            },
        },
        "detailedAnalysis": {
            "trendAnalysis": "Uptrend losing momentum.",
            "supportResistance": "Support 410.50, resistance 432.00.",
            "technicalIndicators": "RSI 74 with bearish divergence.",
            "patterns": "Rising wedge.",
            "riskAssessment": "Elevated; stop above 436.25.",
            "currentTechnicalPosition": "Overextended above the 50-day SMA.",
            "gapAnalysis": {
                "hasGaps": True,
                "gaps": [
                    {
                        "type": "UP",
                        "startPrice": 395.0,
                        "endPrice": 401.5,
                        "size": 6.5,
                        "date": "2024-05-02",
                        "isFilled": False,
                    },
                    {
                        "type": "DOWN",
                        "startPrice": 425.0,
                        "endPrice": 419.0,
                        "size": 6.0,
                        "date": None,
                        "isFilled": True,
                    },
                ],
                "analysis": "One open gap below price, one filled gap.",
            },
        },
    }


class FakeClient:
    """Returns canned answers in order (the last one repeats) and records every prompt."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.prompts = []

    async def infer(self, prompt, png_bytes):
        self.prompts.append(prompt)
        answer = self.answers[min(len(self.prompts), len(self.answers)) - 1]
        if isinstance(answer, Exception):
            raise answer
        return answer


class MemoryStore:
    def __init__(self):
        self.items = {}
        self.deleted = []

    def put(self, data, name=""):
        ref = f"/snapshots/{name or 'chart'}_{len(self.items)}.png"
        self.items[ref] = data
        return ref

    def get(self, ref):
        if ref not in self.items:
            raise ChartNotFoundError(ref)
        return self.items[ref]

    def delete(self, ref):
        self.deleted.append(ref)
        self.items.pop(ref, None)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        gemini_api_key="test-key",
        gemini_model="gemini-test-model",
        gemini_base_url="https://gemini.example/v1",
        inference_timeout_sec=5,
        chart_dir=str(tmp_path / "snapshots"),
        image_max_side=512,
        s3_bucket="",
    )


@pytest.fixture
def png_bytes():
    img = Image.new("RGBA", (64, 32), (20, 30, 40, 255))
    out = io.BytesIO()
    img.save(out, format="PNG")
    return out.getvalue()


@pytest.fixture
def full_text_answer():
    return FULL_TEXT_ANSWER


@pytest.fixture
def json_answer():
    return full_json_answer()


@pytest.fixture
def json_answer_text():
    return json.dumps(full_json_answer())


@pytest.fixture
def fake_client_factory():
    return FakeClient


@pytest.fixture
def memory_store():
    return MemoryStore()
