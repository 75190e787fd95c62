"""Cache-first event labeling around an external classification oracle."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from processor.models import EventLabels, EventRecord

logger = logging.getLogger(__name__)

DRINKS_LABELS = (
    'Vin Roșu', 'Vin Alb', 'Vin Rose', 'Vin Spumant', 'Vin Mix', 'Spirtoase', 'Others',
)
THEME_LABELS = (
    'Gastronomic Events', 'Crame Romanesti', 'Crame internationale', 'Regiuni viti-vinicole',
    'Zile Nationale', 'Soiuri', 'Styles', 'Expert', 'Social/Party',
)
FALLBACK_DRINKS = 'Others'
FALLBACK_THEME = 'Social/Party'


class LabelingOracle(Protocol):
    """Opaque classifier; returns drinks_label, theme_label, confidence, reasoning."""

    model: str

    def classify(
        self,
        event_id: int,
        title: str,
        description: str,
        wine_list: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        ...


class EventLabelService:
    """Returns cached labels, asking the oracle only when missing or forced."""

    DEFAULT_BATCH_SIZE = 5

    def __init__(self, store, oracle: LabelingOracle):
        self.store = store
        self.oracle = oracle

    def ensure_for_event(self, event: EventRecord, force: bool = False) -> EventLabels:
        """
        Get labels for an event, generating and persisting them when needed.

        Args:
            event: Event to label
            force: Regenerate even if labels are cached

        Returns:
            Stored EventLabels
        """
        if not force:
            existing = self.store.get_labels(event.wp_event_id)
            if existing:
                return existing

        return self._generate(event, source='ai_manual_refresh' if force else 'ai_auto_gen')

    def ensure_for_events(self, events: List[EventRecord], max_batch: int = DEFAULT_BATCH_SIZE) -> List[EventLabels]:
        """
        Label events that have no labels yet, at most max_batch oracle calls per invocation.

        Returns:
            Labels of the events handled in this call, cached ones included
        """
        labels = []
        generated = 0

        for event in events:
            existing = self.store.get_labels(event.wp_event_id)
            if existing:
                labels.append(existing)
                continue
            if generated >= max_batch:
                continue
            labels.append(self._generate(event, source='ai_auto_gen'))
            generated += 1

        if generated:
            logger.info(f"Generated labels for {generated} events")
        return labels

    def _generate(self, event: EventRecord, source: str) -> EventLabels:
        logger.info(f"Generating labels for event {event.wp_event_id} ({source})")
        generated = self._classify(event)

        labels = EventLabels(
            event_id=event.wp_event_id,
            drinks_label=generated['drinks_label'],
            theme_label=generated['theme_label'],
            confidence=generated['confidence'],
            reasoning=generated['reasoning'],
            source=source,
            model=getattr(self.oracle, 'model', '') or '',
            updated_at=datetime.now(timezone.utc).isoformat()
        )
        return self.store.save_labels(labels)

    def _classify(self, event: EventRecord) -> Dict[str, Any]:
        """Ask the oracle, falling back to safe labels on failure or unknown values."""
        try:
            data = self.oracle.classify(
                event.wp_event_id,
                event.title,
                event.description,
                event.extracted_wines or None
            )
        except Exception as e:
            logger.error(
                f"Label generation failed for event {event.wp_event_id}: {e}",
                extra={'error_type': type(e).__name__}
            )
            return {
                'drinks_label': FALLBACK_DRINKS,
                'theme_label': FALLBACK_THEME,
                'confidence': 0.0,
                'reasoning': 'Label generation failed',
            }

        drinks = data.get('drinks_label')
        theme = data.get('theme_label')
        try:
            confidence = float(data.get('confidence') or 0.5)
        except (TypeError, ValueError):
            confidence = 0.5

        return {
            'drinks_label': drinks if drinks in DRINKS_LABELS else FALLBACK_DRINKS,
            'theme_label': theme if theme in THEME_LABELS else FALLBACK_THEME,
            'confidence': confidence,
            'reasoning': data.get('reasoning') or 'Generated automatically',
        }
