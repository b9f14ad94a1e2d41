"""核心基础设施（错误分类、issue codes、JSON 投影）。"""
