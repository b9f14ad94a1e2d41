"""内置资产（默认配置 YAML）。"""
