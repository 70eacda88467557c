"""ConsultAI core: model routing, tenant budgets, enrichment jobs and knowledge search."""

__version__ = "0.1.0"
