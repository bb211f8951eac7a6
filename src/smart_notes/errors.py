"""Exception hierarchy for the enrichment pipeline and retrieval engine."""


class SmartNotesError(Exception):
    """Base exception for smart_notes."""


class ModelError(SmartNotesError):
    """An on-device model adapter failed internally (e.g. out of memory)."""


class ModelUnavailableError(ModelError):
    """The adapter is absent or has not finished loading."""


class ModelBusyError(ModelError):
    """The adapter is already running a call and accepts one at a time."""


class JobCancelledError(SmartNotesError):
    """Raised at a stage boundary once the queue generation has moved on."""

    def __init__(self, note_id: str):
        super().__init__(f"Processing of note {note_id} was cancelled")
        self.note_id = note_id


class InterpretationError(SmartNotesError):
    """The generator could not turn a query into a usable interpretation."""


class NoteNotFoundError(SmartNotesError):
    """The requested note does not exist in the store."""

    def __init__(self, note_id: str):
        super().__init__(f"Note '{note_id}' not found")
        self.note_id = note_id
