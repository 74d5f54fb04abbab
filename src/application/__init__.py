# Application Layer
# =================
# Use cases and wiring (no parsing rules, no HTTP details):
# - pipeline.py:  process_sheet() state machine and single-flight guard
# - notifier.py:  batched WhatsApp dispatch
# - status.py:    processed-sheet reporting
# - container.py: builds the services from Settings
# - migration.py: legacy JSON ledger import

from .container import ServiceContainer, create_container, create_source
from .migration import import_legacy_ledger
from .notifier import NotificationBatcher
from .pipeline import PipelineRun, SheetPipeline, SheetRunGuard
from .status import SheetStatusService
