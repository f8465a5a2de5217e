"""Single-use, time-bounded credentials: issuance and exactly-once redemption.

Service objects are wired per request in :mod:`credentials.services`; this
package root stays import-light so models can depend on :mod:`credentials.clock`.
"""
