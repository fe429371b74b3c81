"""
Reference catalogs read while rendering documents: companies, careers, students and academic advisors.
Maintained by the school's administrative screens; this service only reads them.
"""

from sqlalchemy import Column, Integer, String, Text

from app.db.session import Base


class Company(Base):
    __tablename__ = "empresas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column("nombre", String(255), nullable=False, index=True)
    business_line = Column("giro_sector", String(100), nullable=True)
    sector = Column("empresa_sector", String(100), nullable=True)
    attention_to = Column("atencion_a", String(255), nullable=True)
    address = Column("domicilio", String(255), nullable=True)
    neighborhood = Column("colonia", String(120), nullable=True)
    city = Column("ciudad", String(120), nullable=True)
    postal_code = Column("codigo_postal", String(10), nullable=True)
    phone = Column("telefono_empresa", String(50), nullable=True)
    rfc = Column("rfc_empresa", String(20), nullable=True)
    mission = Column("mision", Text, nullable=True)
    holder_name = Column("titular_nombre", String(255), nullable=True)
    holder_position = Column("titular_puesto", String(255), nullable=True)
    signer_name = Column("firmante_nombre", String(255), nullable=True)
    signer_position = Column("firmante_puesto", String(255), nullable=True)


class Career(Base):
    __tablename__ = "carreras"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column("nombre", String(255), nullable=False, index=True)
    coordinator = Column("coordinador", String(255), nullable=True)


class Student(Base):
    __tablename__ = "alumnos"

    student_key = Column("num_control", String(50), primary_key=True)
    name = Column("nombre", String(255), nullable=False)
    career = Column("carrera", String(255), nullable=True)
    address = Column("domicilio", String(255), nullable=True)
    email = Column("email_alumno", String(255), nullable=True)
    phone = Column("telefono", String(50), nullable=True)


class Advisor(Base):
    __tablename__ = "asesores"

    rfc = Column(String(20), primary_key=True)
    name = Column("nombre", String(255), nullable=False)
    career = Column("carrera", String(255), nullable=True)
