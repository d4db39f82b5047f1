from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class SyncSuccess(BaseModel):
    """A provider accepted the change. ``external_id`` is the provider's id
    for the event, or the raw iCal text for Apple."""
    outcome: Literal['success'] = 'success'
    provider: str
    external_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return True


class SyncFailure(BaseModel):
    outcome: Literal['failure'] = 'failure'
    provider: str
    reason: str

    @property
    def ok(self) -> bool:
        return False


SyncOutcome = Union[SyncSuccess, SyncFailure]


class CalendarSyncReport(BaseModel):
    """Per-provider results of one push to the user's calendars"""
    outcomes: List[SyncOutcome] = Field(default_factory=list)

    def add(self, outcome: SyncOutcome):
        self.outcomes.append(outcome)

    @property
    def successful(self) -> bool:
        return any(outcome.ok for outcome in self.outcomes)

    def get(self, provider: str) -> Optional[SyncOutcome]:
        for outcome in self.outcomes:
            if outcome.provider == provider:
                return outcome
        return None

    def as_mapping(self) -> Dict[str, str]:
        """provider -> created identifier (or iCal text), successes only"""
        return {
            outcome.provider: outcome.external_id
            for outcome in self.outcomes
            if isinstance(outcome, SyncSuccess) and outcome.external_id is not None
        }

    def summary(self) -> Dict[str, Dict]:
        """JSON-friendly view; iCal payloads are left out of API responses"""
        result = {}
        for outcome in self.outcomes:
            if isinstance(outcome, SyncSuccess):
                result[outcome.provider] = {
                    'successful': True,
                    'externalId': None if outcome.provider == 'apple' else outcome.external_id,
                }
            else:
                result[outcome.provider] = {'successful': False, 'error': outcome.reason}
        return result
