"""Payment gateway adapters and provider webhooks"""
