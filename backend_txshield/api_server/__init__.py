"""
API server package: HTTP interface for threat checks, alternatives and
static simulation. Delegates all analysis to ThreatCheckService.
"""
