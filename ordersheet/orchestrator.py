# ordersheet/orchestrator.py
"""
Orchestrator - discrete, synchronous operations over the engine.

analyze a template, ingest a source file, classify, render per manufacturer,
export a channel file, send. Every operation takes its inputs explicitly and
reads configuration only from the EngineSettings it was built with.
"""

import datetime
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from ordersheet.blueprint.template_scanner import TemplateAnalysis, TemplateStructureAnalyzer
from ordersheet.errors import OrderSheetError, StructuralError, ValidationError
from ordersheet.ingest.classification import ClassificationResult, OrderClassificationEngine
from ordersheet.ingest.exclusion import ExclusionFilter
from ordersheet.ingest.order_parser import OrderParser, ParseResult
from ordersheet.ingest.workbook_reader import WorkbookSource
from ordersheet.invoice.invoice_converter import InvoiceConversion, InvoiceConverter
from ordersheet.logger_config import setup_logging
from ordersheet.mapping.store import RuleSetStore
from ordersheet.models import CanonicalOrderRecord, Manufacturer
from ordersheet.render import export_pipeline
from ordersheet.render.cell_resolver import RenderContext
from ordersheet.render.export_pipeline import SheetSnapshot
from ordersheet.render.sheet_renderer import OrderSheetRenderer, RenderedSheet
from ordersheet.render.template_language import render_email_subject
from ordersheet.send.batch_state import OrderBatch, OrderBatchStateMachine, SendOutcome
from ordersheet.send.bulk_sender import BulkSender, BulkSendItem, BulkSendSummary, CancelToken
from ordersheet.send.send_log import JsonSendLog
from ordersheet.send.transport import MailTransport, OrderEmail
from ordersheet.settings import EngineSettings, InvoiceTemplate
from ordersheet.system_config import sys_config
from ordersheet.utils.run_monitor import RunMonitor
from ordersheet.utils.snitch import snitch

logger = logging.getLogger(__name__)

TemplateSource = Union[bytes, str, Path, None]


@dataclass
class IngestResult:
    parse: ParseResult
    classification: ClassificationResult
    sendable: List[CanonicalOrderRecord] = field(default_factory=list)
    excluded: List[CanonicalOrderRecord] = field(default_factory=list)

    @property
    def orders(self) -> List[CanonicalOrderRecord]:
        return self.parse.orders


@dataclass
class RenderBatchResult:
    sheets: Dict[str, RenderedSheet] = field(default_factory=dict)   # manufacturer id -> sheet
    errors: Dict[str, str] = field(default_factory=dict)             # manufacturer id -> message
    unclassified: List[str] = field(default_factory=list)            # order numbers


@dataclass
class ChannelExport:
    file_name: str
    content: bytes
    row_count: int


def group_by_manufacturer(records: Iterable[CanonicalOrderRecord]) -> "OrderedDict[str, List[CanonicalOrderRecord]]":
    """Classified records grouped by manufacturer id, in first-seen order."""
    groups: "OrderedDict[str, List[CanonicalOrderRecord]]" = OrderedDict()
    for record in records:
        if record.manufacturer_id:
            groups.setdefault(str(record.manufacturer_id), []).append(record)
    return groups


class Orchestrator:

    def __init__(self, settings: EngineSettings, store: RuleSetStore, send_log,
                 transport: MailTransport, classifier: Optional[OrderClassificationEngine] = None,
                 run_log_dir: Optional[Path] = None, send_timeout: float = 30.0):
        self.settings = settings
        self.store = store
        self.send_log = send_log
        self.transport = transport
        self.classifier = classifier or OrderClassificationEngine()
        self.run_log_dir = run_log_dir
        self.send_timeout = send_timeout

        self.synonyms = settings.synonym_dictionary()
        self.exclusion = ExclusionFilter.from_settings(settings)
        self.machine = OrderBatchStateMachine(send_log, settings.duplicate_check)

    @classmethod
    def from_system_config(cls, transport: MailTransport,
                           classifier: Optional[OrderClassificationEngine] = None) -> "Orchestrator":
        """Build an orchestrator from the paths in SystemConfig (.env / environment)."""
        setup_logging(sys_config.run_log_dir, level=sys_config.log_level)
        settings = EngineSettings.load(sys_config.settings_path)
        return cls(
            settings=settings,
            store=RuleSetStore(sys_config.rulesets_dir, required_fields=settings.required_fields),
            send_log=JsonSendLog(sys_config.send_log_path),
            transport=transport,
            classifier=classifier,
            run_log_dir=sys_config.run_log_dir,
            send_timeout=sys_config.send_timeout,
        )

    # --- authoring ---

    @snitch
    def analyze_template(self, source: WorkbookSource, forced_header_row: Optional[int] = None,
                         preview_limit: int = 5) -> TemplateAnalysis:
        return TemplateStructureAnalyzer(self.synonyms).analyze(
            source, forced_header_row=forced_header_row, preview_limit=preview_limit
        )

    # --- ingestion ---

    def _finish_ingest(self, parsed: ParseResult) -> IngestResult:
        classification = self.classifier.reclassify(parsed.orders)
        sendable, excluded = self.exclusion.partition(parsed.orders)
        return IngestResult(parse=parsed, classification=classification,
                            sendable=sendable, excluded=excluded)

    @snitch
    def ingest_primary(self, source: WorkbookSource) -> IngestResult:
        """Parse the primary export, classify every order and split off excluded ones."""
        return self._finish_ingest(OrderParser(self.synonyms).parse_primary(source))

    @snitch
    def ingest_channel(self, source: WorkbookSource, channel_key: str) -> IngestResult:
        ruleset = self.store.get("shopping_mall", channel_key)
        if ruleset is None:
            raise StructuralError(f"No rule set for channel '{channel_key}'")
        return self._finish_ingest(OrderParser(self.synonyms).parse_channel(source, ruleset))

    def classify(self, records: Iterable[CanonicalOrderRecord], force: bool = False) -> ClassificationResult:
        return self.classifier.reclassify(records, force=force)

    # --- rendering ---

    def _manufacturer_name(self, manufacturer_id: str, records: List[CanonicalOrderRecord]) -> str:
        known = self.classifier.manufacturer(manufacturer_id)
        if known is not None:
            return known.name
        for record in records:
            if record.manufacturer_name:
                return record.manufacturer_name
        return str(manufacturer_id)

    @snitch
    def render_for_manufacturer(self, manufacturer_id: str, records: List[CanonicalOrderRecord],
                                template: TemplateSource = None,
                                today: Optional[datetime.date] = None) -> RenderedSheet:
        """
        Render one manufacturer's order sheet with its own rule set, or the
        common one when the manufacturer has none.

        Raises:
            StructuralError: no rule set or the template workbook is unusable
            ValidationError: the rule set binds a field more than once
        """
        ruleset, origin = self.store.resolve_for_manufacturer(manufacturer_id)
        report = self.store.validate(ruleset)
        if report.duplicate_field_bindings:
            raise ValidationError(
                f"Rule set '{ruleset.destination_key}' binds fields more than once",
                issues=report.to_issues(), report=report,
            )
        for missing in report.missing_required:
            logger.warning(f"Rule set '{ruleset.destination_key}' ({origin}) leaves '{missing}' unmapped")

        if template is None and ruleset.template_file:
            template_path = Path(ruleset.template_file)
            if not template_path.is_absolute():
                template_path = self.store.root_dir / template_path
            template = template_path

        name = self._manufacturer_name(manufacturer_id, records)
        context = RenderContext.for_batch(records, manufacturer_name=name, today=today)
        return OrderSheetRenderer(ruleset).render(records, context, template=template, file_label=name)

    @snitch
    def render_for_manufacturers(self, records: Iterable[CanonicalOrderRecord],
                                 templates: Optional[Dict[str, TemplateSource]] = None,
                                 today: Optional[datetime.date] = None) -> RenderBatchResult:
        """Render every manufacturer's sheet. A failing destination never stops the others."""
        records = list(records)
        templates = templates or {}
        result = RenderBatchResult(unclassified=[r.order_number for r in records if not r.manufacturer_id])

        with RunMonitor("render_order_sheets", self.run_log_dir) as monitor:
            for manufacturer_id, group in group_by_manufacturer(records).items():
                try:
                    result.sheets[manufacturer_id] = self.render_for_manufacturer(
                        manufacturer_id, group, template=templates.get(manufacturer_id), today=today
                    )
                    monitor.log_process_item(manufacturer_id)
                except OrderSheetError as e:
                    result.errors[manufacturer_id] = str(e)
                    monitor.log_process_item(manufacturer_id, status="failed", error=e)
                except (ValueError, TypeError, ArithmeticError) as e:
                    logger.error(f"Rendering failed for manufacturer {manufacturer_id}: {e}")
                    result.errors[manufacturer_id] = str(e)
                    monitor.log_process_item(manufacturer_id, status="failed", error=e)
            if result.unclassified:
                monitor.log_warning(f"{len(result.unclassified)} unclassified order(s) not rendered")
        return result

    @snitch
    def export_channel(self, snapshot: SheetSnapshot, channel_key: str,
                       today: Optional[datetime.date] = None) -> ChannelExport:
        """Reshape a channel upload snapshot through the channel's export pipeline."""
        ruleset = self.store.get("shopping_mall", channel_key)
        if ruleset is None:
            raise StructuralError(f"No rule set for channel '{channel_key}'")
        if ruleset.export_pipeline is None:
            raise ValidationError(f"Channel '{channel_key}' has no export pipeline configured")

        result = export_pipeline.apply(snapshot, ruleset.export_pipeline)
        label = ruleset.display_name or channel_key
        return ChannelExport(
            file_name=export_pipeline.export_filename(label, today),
            content=export_pipeline.write_workbook(result, sheet_name=snapshot.sheet_name),
            row_count=len(result.data_rows),
        )

    # --- sending ---

    def build_batch(self, manufacturer: Manufacturer, records: List[CanonicalOrderRecord]) -> OrderBatch:
        return OrderBatch(manufacturer_id=str(manufacturer.id), manufacturer_name=manufacturer.name,
                          records=list(records), email=manufacturer.email, cc_email=manufacturer.cc_email)

    def build_email(self, batch: OrderBatch, sheet: RenderedSheet,
                    today: Optional[datetime.date] = None) -> OrderEmail:
        today = today or datetime.date.today()
        subject = render_email_subject(
            self.settings.email_subject_template, batch.manufacturer_name,
            today.strftime("%Y-%m-%d"), sender_name=self.settings.sender_name,
        )
        body = (f"{batch.manufacturer_name} order sheet attached.\n"
                f"Orders: {len(batch.records)}")
        return OrderEmail(to=batch.email, subject=subject, body=body, cc=batch.cc_email,
                          attachments=[(sheet.file_name, sheet.content)])

    @snitch
    def send(self, batch: OrderBatch, sheet: RenderedSheet, reason: Optional[str] = None,
             now: Optional[datetime.datetime] = None) -> SendOutcome:
        message = self.build_email(batch, sheet, today=now.date() if now else None)
        return self.machine.send(batch, self.transport, message, reason=reason,
                                 timeout=self.send_timeout, now=now)

    @snitch
    def send_all(self, batches: Iterable[Tuple[OrderBatch, RenderedSheet]],
                 reasons: Optional[Dict[str, str]] = None,
                 cancel_token: Optional[CancelToken] = None) -> BulkSendSummary:
        """Send every batch in order; `reasons` maps manufacturer id -> resend reason."""
        reasons = reasons or {}
        items = [
            BulkSendItem(batch=batch, message=self.build_email(batch, sheet),
                         reason=reasons.get(str(batch.manufacturer_id)))
            for batch, sheet in batches
        ]

        with RunMonitor("send_order_sheets", self.run_log_dir) as monitor:
            summary = BulkSender(self.machine, self.transport, timeout=self.send_timeout).run(items, cancel_token)
            for manufacturer_id, message in summary.errors.items():
                monitor.log_process_item(manufacturer_id, status="failed", error=message)
            monitor.update_logs("summary", {
                "success": summary.success, "failed": summary.failed,
                "skipped": summary.skipped, "cancelled": summary.cancelled,
            })
        return summary

    # --- invoices ---

    @snitch
    def convert_invoice(self, source: WorkbookSource, orders: Iterable[CanonicalOrderRecord],
                        manufacturer_name: str, template: Optional[InvoiceTemplate] = None,
                        today: Optional[datetime.date] = None) -> InvoiceConversion:
        template = template or self.settings.invoice_template
        if template is None:
            raise ValidationError(f"No invoice template configured for '{manufacturer_name}'")
        return InvoiceConverter(self.settings.couriers, template).convert(
            source, orders, manufacturer_name, on=today
        )
