# app.py
"""
Entrypoint da aplicação.

Uso:
  python app.py migrate --db insumos.db
  python app.py item criar "Farinha de trigo" --unidade KG --lead-time 3
  python app.py mov registrar 1 IN 10 --custo 5.50
  python app.py compras gerar-lista
  python app.py rel resumo
"""

from insumos.adapters.cli import main

if __name__ == "__main__":
    main()
