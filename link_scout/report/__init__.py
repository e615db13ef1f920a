# File: link_scout/report/__init__.py
"""link_scout.report: сохранение отчётов сканирования (JSON) для CLI и тестов."""

from link_scout.report.json_report import render_json

__all__ = ["render_json"]
