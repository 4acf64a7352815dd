from __future__ import annotations

import copy
import logging
from typing import Union

from .datamodels import City, Interest, Language, Preferences, Urgency

logger = logging.getLogger("pakgpt")


class PreferenceStore:
    """Holds the user's current filter selection.

    Mutators coerce plain strings to the option enums, so an unknown city or
    topic fails here with ``ValueError`` instead of reaching the service.
    """

    def __init__(self, preferences: Preferences | None = None):
        self._preferences = preferences or Preferences()

    @property
    def preferences(self) -> Preferences:
        return self._preferences

    def snapshot(self) -> Preferences:
        """Copy of the current selection, safe to hold across an await."""
        return copy.deepcopy(self._preferences)

    def set_city(self, city: Union[City, str]) -> None:
        self._preferences.city = City(city)

    def toggle_interest(self, interest: Union[Interest, str]) -> None:
        self._preferences.interests ^= {Interest(interest)}

    def set_urgency(self, urgency: Union[Urgency, str]) -> None:
        self._preferences.urgency = Urgency(urgency)

    def set_language(self, language: Union[Language, str]) -> None:
        self._preferences.language = Language(language)
        logger.debug("Language set to %s", self._preferences.language.value)
