"""Business services for stock reconciliation, purchasing and sales"""
