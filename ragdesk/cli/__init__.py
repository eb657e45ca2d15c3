# =============================================================================
# ragdesk/cli/__init__.py - CLI Module Overview
# =============================================================================
#
# Command-line front end for a local ragdesk knowledge base, run with
#     python -m ragdesk.cli <command>
#
# Every command builds the application from config/config.yaml plus the
# environment (ragdesk.main.build_application), starts the background
# workers, runs, and shuts them down again.  Upload and ask wait for their
# background task so the result can be printed.
#
#   upload         Store a document and wait for processing
#   ask            Ask a question and print the cited answer
#   list           Show documents with status and failure message
#   delete         Delete a document with its chunks and vectors
#   reprocess      Reset a failed document and process it again
#   check-index    Compare chunk rows with vector index entries
#   rebuild-index  Rebuild the vector index from the chunk rows
# =============================================================================
