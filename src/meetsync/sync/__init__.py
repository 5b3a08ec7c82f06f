"""Meeting sync engine -- calendar-to-transcript reconciliation.

Fetches a viewer's calendar window, infers the conferencing resource of
each online meeting from its join URL, probes for transcripts, and
upserts the results into the meeting store.
"""
