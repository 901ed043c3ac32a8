"""tixbot command line interface"""
