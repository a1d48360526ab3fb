"""
Pure evaluation engines for the broker backend.

Engines are calculation only: no I/O, no clock, no database. They may
import ``broker_kernel.domain`` and ``broker_kernel.exceptions`` only.
"""
