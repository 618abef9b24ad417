"""API routes package.

重要：本模块必须**无副作用**（不要在 import 时自动导入各路由）。

路由挂载请在 `src/interfaces/api/app.py` 中显式导入与 include。
"""

__all__: list[str] = []
