# Domain Layer
# ============
# Pure business logic for the order pipeline (no network, no database):
# - models.py:    orders, clients, sheet layout, run results, pipeline states
# - extractor.py: sheet rows -> per-client order sets
# - dedup.py:     new vs already-notified split
# - messages.py:  WhatsApp texts and phone normalization
# - errors.py:    pipeline error taxonomy

from .errors import (
    ConfigurationError,
    DeliveryFailure,
    PipelineError,
    SinkFailure,
    SourceUnavailable,
    ValidationSkip,
)
from .models import (
    ClientNotification,
    ClientOrderSet,
    ClientRecord,
    DedupStats,
    DeliveryOutcome,
    ExtractionStats,
    ForwardResult,
    NotificationResult,
    Order,
    PipelineState,
    ProcessResult,
    SheetLayout,
)
