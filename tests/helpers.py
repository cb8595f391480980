"""Shared model responses, the scripted responder and a fake carrier used across tests."""

import json
import threading
from itertools import count

from dlc_review.services.carrier_service import CarrierTransport, CarrierTransportError

COMPLIANT = json.dumps({"compliant": True, "issues": [], "suggestions": []})
NON_COMPLIANT = json.dumps({
    "compliant": False,
    "issues": ["Message does not include opt-out instructions"],
    "suggestions": ["Append 'Reply STOP to opt out'"],
})
MALFORMED = "I think this message looks fine overall."


class ScriptedResponder:
    """
    Answers with the response of the first marker found in the prompt.

    A response can be a string, an exception instance (raised) or a
    callable(prompt). Safe to call from worker threads.
    """

    def __init__(self, rules=None, default=COMPLIANT):
        self.rules = list(rules or [])
        self.default = default
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, prompt):
        with self._lock:
            self.calls.append(prompt)
        for marker, response in self.rules:
            if marker in prompt:
                return self._resolve(response, prompt)
        return self._resolve(self.default, prompt)

    @staticmethod
    def _resolve(response, prompt):
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(prompt)
        return response

    def calls_with(self, marker):
        with self._lock:
            return [call for call in self.calls if marker in call]


class FakeTransport(CarrierTransport):
    """In-memory carrier that hands out sequential ids and scripted statuses."""

    CARRIER_ID = "fake-carrier"

    def __init__(self, statuses=None, fail_submit=False, fail_poll=False):
        self.statuses = dict(statuses or {})
        self.fail_submit = fail_submit
        self.fail_poll = fail_poll
        self._ids = count(1)

    def submit(self, submission):
        if self.fail_submit:
            raise CarrierTransportError("carrier gateway returned 503")
        return f"CAR-{next(self._ids)}"

    def poll(self, carrier_submission_id):
        if self.fail_poll:
            raise CarrierTransportError("poll timed out")
        return self.statuses.get(carrier_submission_id, "IN_REVIEW")
