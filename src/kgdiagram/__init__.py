"""
kgdiagram - graph data acquisition and reconciliation for RDF/OWL diagrams.

Turns SPARQL endpoints into typed diagram data (classes, elements, links)
and merges the answers of several endpoints into one view.
"""

__version__ = "0.1.0"
