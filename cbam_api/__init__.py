"""CBAM calculator web service: accounts, saved reports and exports."""
