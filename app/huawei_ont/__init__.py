"""Scrape / parse / publish for Huawei EchoLife ONTs (HG8145V5 and friends).

Everything the exporter knows about comes out of pseudo-constructor calls in the web UI's ASP pages.
Only the optical page is mandatory; device, WAN and client pages vary between firmware builds and are
scraped on a best-effort basis.
"""
