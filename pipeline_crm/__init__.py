"""
Pipeline CRM - moteur de cycle de vie et de distribution des leads
"""
