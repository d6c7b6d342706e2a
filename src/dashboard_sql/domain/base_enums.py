from enum import Enum


class VisualizationKind(str, Enum):
    """Dashboard card the generated query has to feed."""
    TABLE = "table"
    BAR = "bar"
    LINE = "line"
    PIE = "pie"
    MAP = "map"
    KPI = "kpi"

    @property
    def allows_aliases(self) -> bool:
        """Only KPI cards use AS aliases; their alias becomes the card title."""
        return self is VisualizationKind.KPI


class PathTaken(str, Enum):
    """Route a pipeline run took to its terminal state."""
    FAST_PATH = "fast_path"
    CORRECTION_SUCCESS = "correction_success"
    CORRECTION_FAILED = "correction_failed"
    CORRECTION_ALSO_FAILED = "correction_also_failed"

    # Early exits before any execution
    OUT_OF_SCOPE = "out_of_scope"
    GENERATION_FAILED = "generation_failed"
    PIPELINE_ERROR = "pipeline_error"


class PipelineStage(str, Enum):
    """States of the query pipeline state machine."""
    START = "start"
    GUARDING = "guarding"
    GENERATING = "generating"
    VALIDATING = "validating"
    EXECUTING = "executing"
    CORRECTING = "correcting"
    RE_EXECUTING = "re_executing"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineStage.DONE, PipelineStage.FAILED)


class CorrectionErrorKind(str, Enum):
    """Classification the corrector assigns to a store error."""
    COLUMN_NOT_FOUND = "column_not_found"
    SYNTAX_ERROR = "syntax_error"
    TYPE_MISMATCH = "type_mismatch"
    JOIN_ERROR = "join_error"
    AGGREGATION_ERROR = "aggregation_error"
    FUNCTION_ERROR = "function_error"
    UNFIXABLE = "unfixable"
    OTHER = "other"
