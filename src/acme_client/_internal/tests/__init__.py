"""acme_client tests"""
