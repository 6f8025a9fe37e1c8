"""
leadsync: keeps one record per contact, verifies it, and publishes it to a CRM.

Stages (each run independently, typically from cron):

  import  -> pull rows from upstream SQL sources into the local contact store
  verify  -> classify pending emails locally, resolve the rest via a bulk job
  export  -> push verified, changed contacts to the CRM
"""

__version__ = "0.3.0"
