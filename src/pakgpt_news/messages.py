from textual.message import Message

from .datamodels import AudioState


class OrchestratorChanged(Message):
    """Status, feed or digest state changed."""
    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__()


class AudioStateChanged(Message):
    """A story's narration state changed."""
    def __init__(self, key: str, state: AudioState) -> None:
        self.key = key
        self.state = state
        super().__init__()
