"""Shared fixtures: in-memory PDFs and a scripted document source."""

from __future__ import annotations

import time

import fitz  # PyMuPDF
import pytest


class FakeSource:
    """DocumentSource with scripted page text and renders."""

    def __init__(self, pages, fail_render=False, delay=0.0):
        self.pages = list(pages)
        self.fail_render = fail_render
        self.delay = delay
        self.render_calls = []
        self.name = "fake_exam.pdf"

    def get_page_count(self):
        return len(self.pages)

    def get_page_text(self, page_index):
        if self.delay:
            time.sleep(self.delay)
        return self.pages[page_index]

    def render_page(self, page_index, scale):
        self.render_calls.append((page_index, scale))
        if self.fail_render:
            raise RuntimeError("rasterizer unavailable")
        return b"\x89PNG fake page %d" % page_index


def build_pdf(pages):
    """Build PDF bytes where each page is a list of text lines."""
    doc = fitz.open()
    for lines in pages:
        page = doc.new_page()
        y = 72
        for line in lines:
            page.insert_text((72, y), line, fontsize=11)
            y += 18
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def fake_source():
    return FakeSource


@pytest.fixture
def make_pdf():
    return build_pdf


@pytest.fixture
def two_question_pdf():
    return build_pdf([
        ["1. What is 2+2?", "A. 3", "B. 4", "C. 5", "D. 6", "Answer: B"],
        ["2. Capital of France?", "A. Berlin", "B. Paris", "C. Rome",
         "D. Madrid", "Answer: B"],
    ])
