"""
Page-Image Fallback Extractor
=============================
Terminal fallback for questions whose options cannot be read from the
text layer: the source page is rendered and attached to the record so the
question is kept instead of discarded.

Records produced here carry placeholder option labels and no answer key;
grading for them is deferred to manual review.
"""

from __future__ import annotations

import logging
from typing import Optional

from .document import DocumentSource
from .models import (
    OPTION_LABELS,
    ExtractedQuestion,
    ExtractionMethod,
    ExtractionWarning,
    ImageAsset,
    WarningType,
)

logger = logging.getLogger(__name__)


class PageImageExtractor:
    """
    Renders pages at a fixed, fast resolution and builds image-backed records.

    A page is rendered at most once per extractor; several questions on the
    same page share the raster. Create one extractor per ingestion pass.
    """

    def __init__(self, scale: float = 1.0):
        self.scale = scale
        self._rendered: dict[int, Optional[bytes]] = {}

    def render(self, page_index: int, source: DocumentSource) -> Optional[bytes]:
        """Render a page, or return None if rasterization fails."""
        if page_index not in self._rendered:
            try:
                self._rendered[page_index] = source.render_page(
                    page_index, self.scale
                )
            except Exception as e:
                logger.warning(f"Failed rendering page {page_index}: {e}")
                self._rendered[page_index] = None
        return self._rendered[page_index]

    def image_for(
        self, page_index: int, source: DocumentSource, ordinal: int
    ) -> Optional[ImageAsset]:
        """Rendered page as an asset named after the question ordinal."""
        data = self.render(page_index, source)
        if data is None:
            return None
        return ImageAsset(data=data, filename=f"question_{ordinal}.png")

    def extract_as_image(
        self,
        page_index: int,
        source: DocumentSource,
        ordinal: int,
        question_text: str = "",
        point_value: float = 1,
        warnings: Optional[list[ExtractionWarning]] = None,
    ) -> ExtractedQuestion:
        """
        Build a record for a question from its rendered page. Never raises.

        Args:
            page_index: Page the question starts on.
            source: Document to rasterize.
            ordinal: Question number (order_index = ordinal - 1).
            question_text: Best-effort text from the text layer.
            point_value: Points awarded for the question.
            warnings: Optional list that receives recoverable problems.
        """
        text = question_text.strip() or f"Question {ordinal}"
        asset = self.image_for(page_index, source, ordinal)

        if asset is None:
            # Rendering failed: keep the question with placeholder options
            if warnings is not None:
                warnings.append(ExtractionWarning(
                    type=WarningType.RENDER_FAILED,
                    ordinal=ordinal,
                    field="image_asset",
                    message=f"Page {page_index} could not be rendered; "
                            f"kept with placeholder options",
                ))
            method = ExtractionMethod.PLACEHOLDER
        else:
            logger.info(
                f"Question {ordinal}: using page {page_index} image fallback"
            )
            if warnings is not None:
                warnings.append(ExtractionWarning(
                    type=WarningType.IMAGE_FALLBACK,
                    ordinal=ordinal,
                    field="options",
                    message=f"Options unreadable; page {page_index} image attached",
                ))
            method = ExtractionMethod.PAGE_IMAGE

        return ExtractedQuestion(
            question_text=text,
            options=list(OPTION_LABELS),
            correct_answer=None,
            point_value=point_value,
            order_index=ordinal - 1,
            has_image=asset is not None,
            image_asset=asset,
            source_page=page_index,
            extraction_method=method,
        )
