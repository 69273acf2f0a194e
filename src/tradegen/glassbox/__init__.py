"""Glass Box audit records."""

from tradegen.glassbox.builder import EnrichmentContext, GlassBoxEnricher

__all__ = ["EnrichmentContext", "GlassBoxEnricher"]
