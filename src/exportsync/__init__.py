"""exportsync: ship Log Analytics export files from blob storage to Axiom.

Watches the containers written by an Azure Log Analytics data export,
streams every five-minute export file to an Axiom dataset in strict
chronological order per container, and deletes each file once Axiom has
acknowledged it.

Delivery contract: at-least-once, ordered within a stream.
"""

__version__ = "0.1.0"
