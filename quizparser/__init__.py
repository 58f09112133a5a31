"""
Quiz Parser
===========
Quiz ingestion from exam PDFs and keyword-based auto-grading of free-text answers.

Architecture:
    - Document Source: Page text and page rasterization via PyMuPDF
    - Segmenter: Splits document text into numbered question blocks
    - Field Extractor: Pulls question text, four options and the answer key
    - Page-Image Fallback: Attaches a rendered page when options are unreliable
    - Quiz Assembly: Orders questions and packages a quiz document
    - Grading Engine: Scores free-text answers against weighted keyword rubrics

Version: 1.0.0
"""

__version__ = "1.0.0"
